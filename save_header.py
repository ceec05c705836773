#!/usr/bin/env python3
"""
GBFR Save Header Codec
======================

Reads and writes the fixed header at the start of a GBFR save file.

Header Structure (0x34 bytes, little-endian):
--------------------------------------------
0x00: main_version     (i32)
0x04: account_id       (u64, Steam id)
0x0C: reserved         (i32)
0x10: sub_version      (i32)
0x14: region_a_offset  (i64)
0x1C: slot_offset      (i64)
0x24: region_a_size    (i64)
0x2C: slot_size        (i64)  <- rewritten whenever the slot region changes

Parse errors (file too short) and layout errors (regions outside the file
or overlapping) are reported separately: the first means truncation, the
second a corrupted or foreign file.
"""

import os
import struct
import argparse
from dataclasses import dataclass

from gbfr_format import HEADER_SIZE, SLOT_SIZE_FIELD_OFFSET
from save_errors import InputNotFoundError, MalformedHeaderError, InvalidLayoutError

HEADER_FORMAT = '<iQiiqqqq'


@dataclass
class SaveHeader:
    """Fixed-size save header"""
    main_version: int
    account_id: int
    reserved: int
    sub_version: int
    region_a_offset: int
    slot_offset: int
    region_a_size: int
    slot_size: int

    @classmethod
    def parse(cls, data: bytes) -> 'SaveHeader':
        """Parse header from the first 0x34 bytes of data."""
        if len(data) < HEADER_SIZE:
            raise MalformedHeaderError(f"Header data too short: {len(data)} bytes (need {HEADER_SIZE})")
        return cls(*struct.unpack(HEADER_FORMAT, data[:HEADER_SIZE]))

    def pack(self) -> bytes:
        return struct.pack(HEADER_FORMAT,
                           self.main_version,
                           self.account_id,
                           self.reserved,
                           self.sub_version,
                           self.region_a_offset,
                           self.slot_offset,
                           self.region_a_size,
                           self.slot_size)

    @property
    def region_a_end(self) -> int:
        return self.region_a_offset + self.region_a_size

    @property
    def slot_end(self) -> int:
        return self.slot_offset + self.slot_size

    def validate(self, file_length: int) -> None:
        """
        Check that both regions lie inside the file and do not overlap.

        Args:
            file_length: Total size of the save file in bytes

        Raises:
            InvalidLayoutError: on any range violation
        """
        if self.region_a_offset < 0 or self.region_a_size < 0 or self.region_a_end > file_length:
            raise InvalidLayoutError(
                f"Region A [0x{self.region_a_offset:X}, +0x{self.region_a_size:X}) "
                f"outside file of {file_length} bytes")
        if self.slot_offset < 0 or self.slot_size < 0 or self.slot_end > file_length:
            raise InvalidLayoutError(
                f"Slot region [0x{self.slot_offset:X}, +0x{self.slot_size:X}) "
                f"outside file of {file_length} bytes")
        if self.region_a_offset <= self.slot_offset and self.region_a_end > self.slot_offset:
            raise InvalidLayoutError(
                f"Region A ends at 0x{self.region_a_end:X}, past slot region start 0x{self.slot_offset:X}")

    def __str__(self):
        return (f"SaveHeader(version={self.main_version}.{self.sub_version}, "
                f"account={self.account_id}, "
                f"region_a=0x{self.region_a_offset:X}+0x{self.region_a_size:X}, "
                f"slot=0x{self.slot_offset:X}+0x{self.slot_size:X})")


def pack_slot_size(slot_size: int) -> bytes:
    """The 8 bytes stored at 0x2C for a slot region of slot_size bytes."""
    return struct.pack('<q', slot_size)


def read_header(path: str, validate: bool = True) -> SaveHeader:
    """
    Read the header of a save file.

    Args:
        path: Save file path
        validate: Also check the region layout against the file length

    Returns:
        SaveHeader
    """
    if not path or not os.path.isfile(path):
        raise InputNotFoundError(f"Save file not found: {path!r}")

    with open(path, 'rb') as f:
        data = f.read(HEADER_SIZE)
        f.seek(0, os.SEEK_END)
        file_length = f.tell()

    header = SaveHeader.parse(data)
    if validate:
        header.validate(file_length)
    return header


def main():
    parser = argparse.ArgumentParser(description='Print the header of a GBFR save file')
    parser.add_argument('savefile', help='Save file (e.g. SaveData1.dat)')
    args = parser.parse_args()

    try:
        header = read_header(args.savefile, validate=False)
    except (InputNotFoundError, MalformedHeaderError) as e:
        print(f"ERROR: {e}")
        return 1

    print(f"Main version:   {header.main_version}")
    print(f"Account id:     {header.account_id}")
    print(f"Reserved:       0x{header.reserved:08X}")
    print(f"Sub version:    {header.sub_version}")
    print(f"Region A:       0x{header.region_a_offset:08X} (+{header.region_a_size} bytes)")
    print(f"Slot region:    0x{header.slot_offset:08X} (+{header.slot_size} bytes, size field @0x{SLOT_SIZE_FIELD_OFFSET:02X})")

    try:
        header.validate(os.path.getsize(args.savefile))
        print("Layout:         PASS")
    except InvalidLayoutError as e:
        print(f"Layout:         FAIL ({e})")
        return 1
    return 0


if __name__ == "__main__":
    exit(main())
