#!/usr/bin/env python3
"""
GBFR Slot Region Serializer
===========================

Rebuilds the slot region after the tables have been edited:

    [encoded tables : N][10 x u64 hashes : 80][footer : 20]

The footer is carried over from the source slot region except for its first
four bytes, which now hold N. The hash table is filled last, once the
tables and footer are in place.
"""

import struct
from typing import Tuple

from gbfr_format import DEFAULT_FORMAT, FOOTER_BYTES, HASH_BYTES, UINT32_MAX, FormatDescription
from save_errors import InvalidLayoutError, SerializationFailureError
from save_hashes import write_hashes
from slot_data import SlotData, encode_slot_data


def source_footer(slot_buf: bytes) -> bytes:
    """The 20 footer bytes at the end of an existing slot region."""
    if len(slot_buf) < FOOTER_BYTES:
        raise InvalidLayoutError(f"Slot region too short for a footer: {len(slot_buf)} bytes")
    return bytes(slot_buf[-FOOTER_BYTES:])


def serialize_slot_data(slot: SlotData, footer: bytes,
                        fmt: FormatDescription = DEFAULT_FORMAT) -> Tuple[bytearray, int]:
    """
    Serialize slot into a complete slot region with a fresh hash table.

    Args:
        slot: Edited table structure
        footer: The 20 footer bytes of the source slot region
        fmt: Hash layout

    Returns:
        (slot_buffer, hashes_offset)

    Raises:
        SerializationFailureError: encoding failed or does not fit a u32 offset
    """
    if len(footer) != FOOTER_BYTES:
        raise SerializationFailureError(f"Footer must be {FOOTER_BYTES} bytes, got {len(footer)}")

    encoded = encode_slot_data(slot)
    hashes_offset = len(encoded)
    if hashes_offset > UINT32_MAX:
        raise SerializationFailureError(f"Encoded tables too large: {hashes_offset} bytes")

    slot_buf = bytearray(hashes_offset + HASH_BYTES + FOOTER_BYTES)
    slot_buf[:hashes_offset] = encoded

    footer_start = hashes_offset + HASH_BYTES
    slot_buf[footer_start:] = footer
    struct.pack_into('<I', slot_buf, footer_start, hashes_offset)

    write_hashes(slot_buf, hashes_offset, fmt)
    return slot_buf, hashes_offset
