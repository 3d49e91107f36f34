#!/usr/bin/env python3
import re
import sys
from pathlib import Path
from argparse import ArgumentParser, FileType

import fw

__version__ = "1.2"

NUMBER = re.compile(r"\s*([+-]?)(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)")

def strtol(text):
    """Leading base 0 integer of text, ignoring what follows; 0 if none."""
    match = NUMBER.match(text)
    if match is None:
        return 0
    sign, digits = match.groups()
    if digits[:2] in ("0x", "0X"):
        value = int(digits, 16)
    elif digits.startswith("0"):
        value = int(digits, 8)
    else:
        value = int(digits)
    return -value if sign == "-" else value

def address(text):
    value = strtol(text)
    if value <= 0:
        raise ValueError(text)
    return value

argparser = ArgumentParser(prog="fwtool",
    description="Read & extract iPod nano data parts from a FILE dump.")
argparser.add_argument("file", type=FileType("rb"))
argparser.add_argument("-l", "--list", action="store_true",
    help="only list available parts according to the dump directory")
argparser.add_argument("-H", "--hash", action="store_true",
    help="do a hash on every part of the dump")
argparser.add_argument("-A", "--all", action="store_true",
    help="extract ALL found parts from dump (default names used)")
argparser.add_argument("-4", "--nano4g-compat", action="store_true",
    help="force iPod nano 3g firmwares to be recognised as nano 4g ones")
argparser.add_argument("-e", "--extract", metavar="NAME",
    help="select which part you want to extract")
argparser.add_argument("-o", "--output", type=FileType("wb"), metavar="FILE",
    help="put the extracted part into FILE (default NAME.fw)")
argparser.add_argument("-O", "--outdir", type=Path, metavar="DIR",
    help="directory for parts written under their default names")
argparser.add_argument("-d", "--directory-address", type=address, metavar="ADDR",
    help="specify the directory address (default: probe the dump)")
argparser.add_argument("-a", "--header-length", type=address, metavar="LEN",
    default=fw.HEADER_LENGTH,
    help="specify the header length of each part (default 0x%X)" % fw.HEADER_LENGTH)
argparser.add_argument("-v", "--version", action="version",
    version="%(prog)s version " + __version__)

def run(args):
    fd = args.file
    table = fw.locate_and_build(fd, args.directory_address, args.nano4g_compat)

    if args.hash:
        for name, value in fw.hash_all(fd, table, args.header_length):
            print("%s: 0x%X" % (name, value))
    elif args.all:
        fw.extract_all(fd, table, args.header_length, args.outdir)
        print("Done.")
    elif args.list:
        fw.list_table(table, verbose=True)
    elif args.extract is not None:
        found = fw.extract_by_name(fd, table, args.extract, args.header_length,
                                   args.output, args.outdir)
        if not found:
            sys.stderr.write("No part named '%s' found.\n\n" % args.extract)
            fw.list_table(table)
    else:
        fw.list_table(table)

def main(argv=None):
    args = argparser.parse_args(argv)

    try:
        with args.file:
            run(args)
    except (fw.EmptyDirectory, OSError) as exc:
        sys.stderr.write("%s\n" % exc)
        return 1
    finally:
        if args.output is not None:
            args.output.close()
    return 0

if __name__ == "__main__":
    sys.exit(main())
