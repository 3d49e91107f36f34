import pytest

from fwstructs import DirectoryRecord, encode


def record(segment_type, device_offset=0, length=0, device_tag=b"NAND", **kw):
    fields = dict(id=0, address=0, entry_offset=0, checksum=0, version=0,
                  load_address=0)
    fields.update(kw)
    return DirectoryRecord(device_tag=device_tag, segment_type=segment_type,
                           device_offset=device_offset, length=length, **fields)


def pattern(size):
    return bytearray((x * 7 + 3) & 0xFF for x in range(size))


@pytest.fixture
def make_dump(tmp_path):
    """Write a synthetic dump and return an open, read-only handle to it.

    entries maps a directory offset to a list of records laid out back to
    back from there.
    """
    handles = []

    def factory(size=0x6000, entries=None, fill=None, name="dump.bin"):
        data = bytearray(size) if fill is None else bytearray(fill)
        for offset, records in (entries or {}).items():
            for idx, rec in enumerate(records):
                start = offset + idx * 40
                data[start:start + 40] = encode(rec)
        path = tmp_path / name
        path.write_bytes(bytes(data))
        fd = open(path, "rb")
        handles.append(fd)
        return fd

    yield factory

    for fd in handles:
        fd.close()
