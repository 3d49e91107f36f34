import struct

from fwstructs import ENTRY_SIZE, decode, encode, is_valid, swap32
from conftest import record


def raw_block(dev, kind, *words):
    return dev + kind + struct.pack("<8I", *words)


def test_decode_reverses_every_field():
    block = raw_block(b"DNAN", b"soso", 1, 0x4400, 0x1F000, 4, 5, 6, 7, 0x8000000)
    assert len(block) == ENTRY_SIZE

    entry = decode(block)
    assert entry.device_tag == b"NAND"
    assert entry.segment_type == b"osos"
    assert entry.raw_segment_type == b"soso"
    assert entry.name == "osos"
    assert entry.id == 1
    assert entry.device_offset == 0x4400
    assert entry.length == 0x1F000
    assert entry.address == 4
    assert entry.entry_offset == 5
    assert entry.checksum == 6
    assert entry.version == 7
    assert entry.load_address == 0x8000000


def test_decode_ignores_trailing_bytes():
    block = raw_block(b"!ATA", b"TOOB", *range(8)) + b"trailing"
    assert decode(block).segment_type == b"BOOT"


def test_encode_matches_on_disk_layout():
    block = raw_block(b"DNAN", b"TOOB", 0, 0x100, 0x200, 0, 0, 0, 0, 0)
    assert encode(record(b"BOOT", 0x100, 0x200)) == block


def test_markers():
    assert is_valid(decode(raw_block(b"DNAN", b"TOOB", *range(8))))
    assert is_valid(decode(raw_block(b"!ATA", b"TOOB", *range(8))))
    assert not is_valid(decode(raw_block(b"XXXX", b"TOOB", *range(8))))
    # markers only count after byte order correction
    assert not is_valid(decode(raw_block(b"NAND", b"TOOB", *range(8))))
    assert not is_valid(decode(raw_block(b"\0" * 4, b"TOOB", *range(8))))


def test_swap32():
    assert swap32(b"abcd") == b"dcba"
    assert swap32(bytearray(b"ATA!")) == b"!ATA"


def test_names_stop_at_first_nul():
    entry = decode(raw_block(b"DNAN", b"\0CSR", *range(8)))
    assert entry.segment_type == b"RSC\0"
    assert entry.name == "RSC"
    assert entry.dev == "NAND"
    assert record(b"\0\0\0\0").name == ""
