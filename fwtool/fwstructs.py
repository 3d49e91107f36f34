from collections import namedtuple
from construct import *

ENTRY_SIZE = 40
MARKERS = (b"NAND", b"ATA!")

def swap32(data):
    return bytes(data[3::-1])

def cstring(data):
    return data.split(b"\0", 1)[0].decode("latin-1")

# Every field is stored as a byte-reversed word
Tag  = ByteSwapped(Bytes(4))
Word = ByteSwapped(Int32ub)

DirectoryEntry = Struct(
    "device_tag"    / Tag,
    "segment_type"  / Tag,
    "id"            / Word,
    "device_offset" / Word,
    "length"        / Word,
    "address"       / Word,
    "entry_offset"  / Word,
    "checksum"      / Word,
    "version"       / Word,
    "load_address"  / Word,
)

class DirectoryRecord(namedtuple("DirectoryRecord", """
    device_tag
    segment_type
    id
    device_offset
    length
    address
    entry_offset
    checksum
    version
    load_address
""")):
    __slots__ = ()

    @property
    def raw_segment_type(self):
        return swap32(self.segment_type)

    @property
    def name(self):
        return cstring(self.segment_type)

    @property
    def dev(self):
        return cstring(self.device_tag)

def decode(block):
    entry = DirectoryEntry.parse(bytes(block[:ENTRY_SIZE]))
    return DirectoryRecord(*(entry[k] for k in DirectoryRecord._fields))

def encode(record):
    return DirectoryEntry.build(record._asdict())

def is_valid(record):
    return record.device_tag in MARKERS

__all__ = ["ENTRY_SIZE", "MARKERS", "DirectoryEntry", "DirectoryRecord",
           "swap32", "cstring", "decode", "encode", "is_valid"]
