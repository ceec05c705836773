#!/usr/bin/env python3
"""
GBFR Slot Hash Engine
=====================

The game checks ten XXH64 hashes stored right after the serialized tables.
Hash i covers the byte range

    [start_offset_i, hashes_offset - sub_size_i)

of the slot buffer and is stored as u64 little-endian at
hashes_offset + 8 * i. hashes_offset itself is kept in the first four bytes
of the 20-byte footer that closes the slot region.

A stored uint record (the hash-seed record) selects which of the ten hashes
the game treats as active; the patcher always rewrites all ten, so the
active index is only reported.
"""

import struct
import argparse
from typing import List, Optional

import xxhash

from gbfr_format import (DEFAULT_FORMAT, FOOTER_BYTES, HASH_BYTES, HASH_COUNT,
                         FormatDescription, HashSectionInfo, load_format_description)
from save_errors import HashMismatchError, HashRangeInvalidError, InvalidLayoutError, SavePatchError
from save_header import SaveHeader, read_header
from slot_data import decode_slot_data
from table_index import TableIndex


# =============================================================================
# Slot Region Geometry
# =============================================================================

def hashes_offset_of(slot_buf: bytes) -> int:
    """
    Read hashes_offset from the footer and check it against the buffer length.

    Raises:
        InvalidLayoutError: buffer too short or footer disagrees with its length
    """
    if len(slot_buf) < HASH_BYTES + FOOTER_BYTES:
        raise InvalidLayoutError(f"Slot region too short: {len(slot_buf)} bytes")

    footer_start = len(slot_buf) - FOOTER_BYTES
    hashes_offset = struct.unpack_from('<I', slot_buf, footer_start)[0]
    if hashes_offset + HASH_BYTES + FOOTER_BYTES != len(slot_buf):
        raise InvalidLayoutError(
            f"Footer hashes_offset 0x{hashes_offset:X} does not match slot region "
            f"of {len(slot_buf)} bytes")
    return hashes_offset


def read_slot_region(path: str, header: SaveHeader) -> bytes:
    """Read the slot region bytes described by header."""
    with open(path, 'rb') as f:
        f.seek(header.slot_offset)
        data = f.read(header.slot_size)
    if len(data) != header.slot_size:
        raise InvalidLayoutError(
            f"Slot region truncated: got {len(data)} of {header.slot_size} bytes")
    return data


# =============================================================================
# Hashing
# =============================================================================

def section_range(index: int, section: HashSectionInfo, hashes_offset: int):
    """(start, end) byte range of one hash section."""
    length = hashes_offset - (section.start_offset + section.sub_size)
    if section.start_offset < 0 or section.sub_size < 0 or length < 0:
        raise HashRangeInvalidError(index, section.start_offset, section.sub_size, hashes_offset)
    return section.start_offset, section.start_offset + length


def section_hash(slot_buf: bytes, index: int, section: HashSectionInfo,
                 hashes_offset: int, seed: int) -> int:
    start, end = section_range(index, section, hashes_offset)
    return xxhash.xxh64(bytes(slot_buf[start:end]), seed=seed).intdigest()


def compute_hashes(slot_buf: bytes, hashes_offset: int,
                   fmt: FormatDescription = DEFAULT_FORMAT) -> List[int]:
    return [section_hash(slot_buf, i, section, hashes_offset, fmt.xxhash64_seed)
            for i, section in enumerate(fmt.hash_sections)]


def stored_hashes(slot_buf: bytes, hashes_offset: int) -> List[int]:
    return list(struct.unpack_from(f'<{HASH_COUNT}Q', slot_buf, hashes_offset))


def write_hashes(slot_buf: bytearray, hashes_offset: int,
                 fmt: FormatDescription = DEFAULT_FORMAT) -> List[int]:
    """
    Compute all ten section hashes and store them in slot_buf.

    Args:
        slot_buf: Mutable slot buffer, tables already in place
        hashes_offset: Length of the serialized tables
        fmt: Hash layout

    Returns:
        The hashes written, in section order
    """
    hashes = compute_hashes(slot_buf, hashes_offset, fmt)
    struct.pack_into(f'<{HASH_COUNT}Q', slot_buf, hashes_offset, *hashes)
    return hashes


def find_mismatches(slot_buf: bytes, fmt: FormatDescription = DEFAULT_FORMAT) -> List[int]:
    """Indexes of the sections whose stored hash differs from the recomputed one."""
    hashes_offset = hashes_offset_of(slot_buf)
    expected = compute_hashes(slot_buf, hashes_offset, fmt)
    stored = stored_hashes(slot_buf, hashes_offset)
    return [i for i, (a, b) in enumerate(zip(expected, stored)) if a != b]


def active_hash_index(index: TableIndex, fmt: FormatDescription = DEFAULT_FORMAT) -> Optional[int]:
    """seed % 10 from the hash-seed record, or None if the save has none."""
    seed = index.first_uint_of_type(fmt.hash_seed_id_type)
    if seed is None:
        return None
    return seed % HASH_COUNT


def verify_hashes(path: str, fmt: FormatDescription = DEFAULT_FORMAT, verbose: bool = False) -> bool:
    """
    Recompute every section hash of a save file and compare with the stored ones.

    Args:
        path: Save file path
        fmt: Hash layout
        verbose: Print per-section results

    Returns:
        True when all ten match

    Raises:
        HashMismatchError: listing every mismatching section
    """
    header = read_header(path)
    slot_buf = read_slot_region(path, header)
    hashes_offset = hashes_offset_of(slot_buf)

    active = active_hash_index(TableIndex(decode_slot_data(slot_buf[:hashes_offset])), fmt)
    if verbose:
        print(f"Hash table at slot+0x{hashes_offset:X}, active index: "
              f"{'none' if active is None else active}")

    expected = compute_hashes(slot_buf, hashes_offset, fmt)
    stored = stored_hashes(slot_buf, hashes_offset)
    mismatched = []
    for i, (want, have) in enumerate(zip(expected, stored)):
        ok = want == have
        if not ok:
            mismatched.append(i)
        if verbose:
            marker = '*' if i == active else ' '
            print(f"  {marker}[{i}] stored=0x{have:016X} computed=0x{want:016X} "
                  f"{'OK' if ok else 'MISMATCH'}")

    if mismatched:
        raise HashMismatchError(path, mismatched)
    return True


def main():
    parser = argparse.ArgumentParser(description='Check the slot hashes of a GBFR save file')
    parser.add_argument('savefile', help='Save file (e.g. SaveData1.dat)')
    parser.add_argument('--layout', help='JSON hash layout override')
    args = parser.parse_args()

    try:
        fmt = load_format_description(args.layout) if args.layout else DEFAULT_FORMAT
        verify_hashes(args.savefile, fmt, verbose=True)
    except (SavePatchError, OSError, ValueError) as e:
        print(f"ERROR: {e}")
        return 1

    print("All hashes match")
    return 0


if __name__ == "__main__":
    exit(main())
