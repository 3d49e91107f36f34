#!/usr/bin/env python3
"""
Directory discovery and segment carving for iPod nano NAND dumps.

A dump holds a run of 40 byte directory records (see fwstructs) somewhere
near the start of the image, at an offset that depends on the device
generation. Each record names a segment by device offset and length; every
segment is followed by a fixed size header region which is carved with it.
"""

import os
import sys
from collections import namedtuple

import numpy as np

from fwstructs import ENTRY_SIZE, MARKERS, decode, is_valid, swap32

Layout = namedtuple("Layout", "name offset")

LAYOUTS = (
    Layout("iPod nano 1g", 0x4200),
    Layout("iPod nano 2g", 0x4800),
    Layout("iPod nano 3g", 0x5000),
)

ADDR_DIR_DEFAULT = 0x4800
ADDR_DIR_3G      = 0x5000
HEADER_LENGTH    = 0x800
COMPAT_SHIFT     = 0x1000

HASH_MULTIPLIER = 0x0FFFFFFF
HASH_MASK       = 0xFFFFFFFF
# fgetc() past end of file, as an unsigned int
EOF_VALUE       = 0xFFFFFFFF

SCAN_CHUNK = 1 << 20
COPY_CHUNK = 1 << 16


class EmptyDirectory(Exception):
    pass


def read_entry(fd, offset):
    fd.seek(offset)
    block = fd.read(ENTRY_SIZE)
    if len(block) < ENTRY_SIZE:
        return None
    return decode(block)

def check_header(fd, offset):
    entry = read_entry(fd, offset)
    return entry is not None and is_valid(entry)

def scan(fd, start=0):
    """Return the first offset >= start holding a valid entry, or None.

    Equivalent to probing every byte offset in turn, but reads the dump in
    overlapping chunks and only decodes where the raw marker bytes appear.
    """
    markers = [swap32(x) for x in MARKERS]
    pos = start
    while True:
        fd.seek(pos)
        window = fd.read(SCAN_CHUNK + ENTRY_SIZE - 1)
        if len(window) < ENTRY_SIZE:
            return None
        # last index a full entry can start at is len(window) - ENTRY_SIZE
        end = len(window) - ENTRY_SIZE + 4
        idx = 0
        while True:
            hits = [x for x in (window.find(m, idx, end) for m in markers) if x >= 0]
            if not hits:
                break
            idx = min(hits)
            if is_valid(decode(window[idx:idx + ENTRY_SIZE])):
                return pos + idx
            idx += 1
        pos += len(window) - ENTRY_SIZE + 1

def locate(fd):
    for layout in LAYOUTS:
        if check_header(fd, layout.offset):
            print("> %s header detected." % layout.name)
            return layout.offset

    offset = scan(fd)
    if offset is not None:
        print("> Unknown header found at 0x%X" % offset)
        return offset

    return ADDR_DIR_DEFAULT

def read_directory(fd, offset):
    while True:
        entry = read_entry(fd, offset)
        if entry is None or not is_valid(entry):
            return
        yield entry
        offset += ENTRY_SIZE

def build_table(fd, offset, compat=False):
    table = []
    for entry in read_directory(fd, offset):
        if compat and offset == ADDR_DIR_3G:
            entry = entry._replace(device_offset=entry.device_offset + COMPAT_SHIFT)
        table.append(entry)

    if not table:
        raise EmptyDirectory("Cannot find at least one valid part in the dump.")
    return table

def locate_and_build(fd, offset=None, compat=False):
    if offset is None:
        offset = locate(fd)

    if offset == ADDR_DIR_3G and compat:
        print("> iPod nano 4g compat. mode enabled")

    return build_table(fd, offset, compat)


def read_span(fd, offset, length):
    """Yield the bytes of [offset, offset+length) in chunks.

    Anything past the end of the dump comes back as None chunks of the
    missing size, so callers can decide how to fill the gap.
    """
    fd.seek(offset)
    remaining = length
    while remaining > 0:
        data = fd.read(min(remaining, COPY_CHUNK))
        if not data:
            yield None, remaining
            return
        yield data, len(data)
        remaining -= len(data)

def _hash_block(value, values, pos):
    n = len(values)
    powers = np.full(n, HASH_MULTIPLIER, dtype=np.uint64)
    powers[0] = 1
    powers = np.cumprod(powers, dtype=np.uint64)
    # powers[k] = B**k, so B**n = powers[-1] * B
    scale = (int(powers[-1]) * HASH_MULTIPLIER) & HASH_MASK
    positions = np.arange(pos, pos + n, dtype=np.uint64)
    total = np.sum(values * positions * powers[::-1], dtype=np.uint64)
    return (value * scale + int(total)) & HASH_MASK

def hash_segment(fd, offset, length, header_length=HEADER_LENGTH):
    """Rolling checksum of a segment and its header.

    hash = hash * 0x0FFFFFFF + byte * pos, wrapping at 32 bits. Arithmetic is
    done modulo 2**64 in numpy and reduced, which gives the same result.
    """
    value = 0
    pos = 0
    for data, size in read_span(fd, offset, length + header_length):
        if data is None:
            values = np.full(size, EOF_VALUE, dtype=np.uint64)
        else:
            values = np.frombuffer(data, dtype=np.uint8).astype(np.uint64)
        value = _hash_block(value, values, pos)
        pos += size
    return value

def extract_segment(fd, out, name, offset, length,
                    header_length=HEADER_LENGTH, outdir=None):
    close = out is None
    if close:
        path = name + ".fw"
        if outdir is not None:
            path = os.path.join(outdir, path)
        out = open(path, "wb")
    else:
        path = getattr(out, "name", name)

    print("Extracting from 0x%8X to 0x%8X in %s." % (
        offset, offset + length + header_length, path))

    try:
        for data, size in read_span(fd, offset, length + header_length):
            out.write(b"\xff" * size if data is None else data)
    finally:
        if close:
            out.close()


def format_record(entry, verbose=False):
    dev = entry.dev
    if not verbose:
        return "dev: %s type: %s devOffset: %X len: %X" % (
            dev, entry.name, entry.device_offset, entry.length)

    return ("dev: %s type: %s\n"
            "id: %X\n"
            "devOffset: %X\n"
            "len: %X\n"
            "addr: %X\n"
            "entryOffset: %X\n"
            "checksum: %X\n"
            "version: %X\n"
            "loadAddr: %X\n") % (
        dev, entry.name, entry.id, entry.device_offset, entry.length,
        entry.address, entry.entry_offset, entry.checksum, entry.version,
        entry.load_address)

def list_table(table, verbose=False, file=None):
    file = sys.stdout if file is None else file
    for entry in table:
        print(format_record(entry, verbose), file=file)

def hash_all(fd, table, header_length=HEADER_LENGTH):
    return [(entry.name, hash_segment(fd, entry.device_offset, entry.length,
                                      header_length))
            for entry in table]

def extract_all(fd, table, header_length=HEADER_LENGTH, outdir=None):
    for entry in table:
        extract_segment(fd, None, entry.name, entry.device_offset,
                        entry.length, header_length, outdir)

def extract_by_name(fd, table, name, header_length=HEADER_LENGTH,
                    out=None, outdir=None):
    if isinstance(name, str):
        try:
            name = name.encode("latin-1")
        except UnicodeEncodeError:
            return False

    found = False
    for entry in table:
        if entry.segment_type == name:
            found = True
            extract_segment(fd, out, entry.name, entry.device_offset,
                            entry.length, header_length, outdir)
    return found
