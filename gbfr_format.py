#!/usr/bin/env python3
"""
Granblue Fantasy: Relink - Save Format Constants
================================================

Single home for every magic number the patcher relies on: field ids,
item id ranges, the "empty slot" sentinel, slot region geometry and the
hash section table.

Save File Layout:
----------------
| Offset        | Size        | Content                                   |
|---------------|-------------|-------------------------------------------|
| 0x0000        | 0x34        | Header (see save_header.py)               |
| region_a      | region_a_sz | Opaque region, copied verbatim            |
| slot_offset   | slot_size   | Slot region                               |

Slot Region Layout:
------------------
| Offset          | Size | Content                                      |
|-----------------|------|----------------------------------------------|
| 0x00            | N    | FlatBuffers SaveDataBinary (int/uint/bool)   |
| N               | 80   | 10 x XXH64 section hashes (u64 LE)           |
| N + 80          | 20   | Footer, bytes 0-3 = N (hashes_offset, u32)   |

Field Ids (IDType, table):
-------------------------
| Id   | Table | Meaning                                                |
|------|-------|--------------------------------------------------------|
| 1105 | int   | Transmarvel points (secondary currency), unit 0       |
| 1702 | int   | Wrightstone trait levels, unit 14xxxxx{00,01,02}      |
| 1802 | int   | Lottery ticket vouchers, unit 145                      |
| 2102 | uint  | Wrightstone type (sentinel = empty slot)               |
| 2103 | uint  | Wrightstone unit                                       |
| 2104 | bool  | Wrightstone locked                                     |
| 2105 | uint  | Wrightstone exist status                               |
| 2702 | uint  | Sigil present                                          |
| 2703 | uint  | Sigil type hash                                        |
| 2704 | int   | Sigil level                                            |
| 2706 | uint  | Sigil equip status (sentinel = not equipped)           |
| 2707 | uint  | Sigil lock status (3 = locked)                         |
"""

import json
import os
from dataclasses import dataclass, field
from typing import Tuple

# =============================================================================
# Slot Region Geometry
# =============================================================================

HEADER_SIZE = 0x34
SLOT_SIZE_FIELD_OFFSET = 0x2C

FOOTER_BYTES = 0x14
HASH_COUNT = 10
HASH_BYTES = HASH_COUNT * 8

# =============================================================================
# Sentinels and Field Ids
# =============================================================================

# Same value, two readings: an empty wrightstone slot, an unequipped sigil.
EMPTY_SENTINEL = 2289754288

VOUCHER_ID_TYPE = 1802
VOUCHER_UNIT_ID = 145
SECONDARY_ID_TYPE = 1105
SECONDARY_UNIT_ID = 0

# Transmarvel points per voucher, kept as text so it can be used exactly
VOUCHER_TO_SECONDARY_RATE = "1.33"

SIGIL_ID_FIRST = 30000
SIGIL_ID_LAST = 34999

SIGIL_PRESENT = 2702
SIGIL_TYPE = 2703
SIGIL_LEVEL = 2704
SIGIL_EQUIP_STATUS = 2706
SIGIL_LOCK_STATUS = 2707

SIGIL_MAX_DISCARD_LEVEL = 11
SIGIL_LOCKED = 3

WRIGHTSTONE_ID_FIRST = 50000
WRIGHTSTONE_ID_LAST = 54999

WRIGHTSTONE_TYPE = 2102
WRIGHTSTONE_UNIT = 2103
WRIGHTSTONE_LOCKED = 2104
WRIGHTSTONE_EXIST_STATUS = 2105
WRIGHTSTONE_LEVELS = 1702

WRIGHTSTONE_LEVEL_UNIT_BASE = 140_000_000
WRIGHTSTONE_LEVEL_UNIT_STRIDE = 100
WRIGHTSTONE_MIN_KEEP_LEVEL = 20

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1
UINT32_MAX = 2 ** 32 - 1

# =============================================================================
# Hash Section Table
# =============================================================================
# Built-in description; a real save's table is loaded with --layout.

DEFAULT_XXHASH64_SEED = 0x0000000000000000
DEFAULT_HASH_SEED_ID_TYPE = 3

DEFAULT_HASH_SECTIONS = (
    (0x00, 0x00),
    (0x00, 0x04),
    (0x04, 0x04),
    (0x04, 0x08),
    (0x08, 0x08),
    (0x08, 0x10),
    (0x10, 0x10),
    (0x10, 0x18),
    (0x18, 0x18),
    (0x18, 0x20),
)


@dataclass(frozen=True)
class HashSectionInfo:
    """Byte range [start_offset, hashes_offset - sub_size) covered by one hash."""
    start_offset: int
    sub_size: int


@dataclass(frozen=True)
class FormatDescription:
    """Everything about the hash table that comes from outside the file."""
    hash_sections: Tuple[HashSectionInfo, ...] = field(
        default_factory=lambda: tuple(HashSectionInfo(s, z) for s, z in DEFAULT_HASH_SECTIONS))
    xxhash64_seed: int = DEFAULT_XXHASH64_SEED
    hash_seed_id_type: int = DEFAULT_HASH_SEED_ID_TYPE

    def __post_init__(self):
        if len(self.hash_sections) != HASH_COUNT:
            raise ValueError(f"Expected {HASH_COUNT} hash sections, got {len(self.hash_sections)}")
        if not 0 <= self.xxhash64_seed < 2 ** 64:
            raise ValueError(f"XXH64 seed out of range: {self.xxhash64_seed}")


DEFAULT_FORMAT = FormatDescription()


def wrightstone_level_unit(unit_id: int, trait: int) -> int:
    """Unit id of a wrightstone's trait level record (trait 0, 1 or 2)."""
    return (WRIGHTSTONE_LEVEL_UNIT_BASE
            + (unit_id - WRIGHTSTONE_ID_FIRST) * WRIGHTSTONE_LEVEL_UNIT_STRIDE
            + trait)


def _parse_int(value) -> int:
    # JSON has no hex literals, so "0x..." strings are accepted as well
    if isinstance(value, str):
        return int(value, 0)
    return int(value)


def load_format_description(path: str) -> FormatDescription:
    """
    Load a hash layout override from JSON.

    Expected shape:
        {
            "xxhash64_seed": "0x...",
            "hash_seed_id_type": 3,
            "hash_sections": [[start, sub_size], ... 10 entries ...]
        }

    Missing keys fall back to the built-in values.

    Args:
        path: JSON file path

    Returns:
        FormatDescription
    """
    with open(path, 'r', encoding='utf-8') as f:
        raw = json.load(f)

    sections = raw.get('hash_sections', DEFAULT_HASH_SECTIONS)
    return FormatDescription(
        hash_sections=tuple(HashSectionInfo(_parse_int(s), _parse_int(z)) for s, z in sections),
        xxhash64_seed=_parse_int(raw.get('xxhash64_seed', DEFAULT_XXHASH64_SEED)),
        hash_seed_id_type=_parse_int(raw.get('hash_seed_id_type', DEFAULT_HASH_SEED_ID_TYPE)),
    )


def default_data_dir() -> str:
    """Directory holding the ticket lookup CSVs shipped next to the modules."""
    return os.path.join(os.path.dirname(os.path.abspath(__file__)), 'Data')
