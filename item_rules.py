#!/usr/bin/env python3
"""
Item Eligibility Rules
======================

Scans the two discardable item kinds out of a TableIndex and decides which
ones may be turned into lottery tickets.

Sigils (unit ids 30000-34999):
  Listed only if all of present (nonzero), level, equip status, lock status
  and type exist. Discard iff level <= 11, lock != 3 and equip == sentinel.

Wrightstones (unit ids 50000-54999):
  Listed only if type exists and is not the empty-slot sentinel, and exist
  status and lock flag exist. Trait levels default to 0 when absent.
  Discard iff level1 < 20 and not locked.
"""

from dataclasses import dataclass
from typing import List

import gbfr_format as fmt
from table_index import TableIndex


@dataclass
class Sigil:
    unit_id: int
    level: int
    type_hash: int
    equip_status: int
    lock_status: int
    ticket_count: int = 0
    keep: bool = True


@dataclass
class Wrightstone:
    unit_id: int
    level1: int
    level2: int
    level3: int
    exist_status: int
    lock_status: bool
    # Trait types are not read yet
    type1: int = 0
    type2: int = 0
    type3: int = 0
    ticket_count: int = 0
    keep: bool = True

    @property
    def levels(self):
        return (self.level1, self.level2, self.level3)


# =============================================================================
# Keep/Discard Policy
# =============================================================================

def sigil_is_discardable(level: int, lock_status: int, equip_status: int) -> bool:
    """Low level, not locked, and carrying the not-equipped sentinel."""
    return (level <= fmt.SIGIL_MAX_DISCARD_LEVEL
            and lock_status != fmt.SIGIL_LOCKED
            and equip_status == fmt.EMPTY_SENTINEL)


def wrightstone_is_discardable(level1: int, lock_status: bool) -> bool:
    return level1 < fmt.WRIGHTSTONE_MIN_KEEP_LEVEL and not lock_status


def sigil_filter(sigils: List[Sigil]) -> List[Sigil]:
    for s in sigils:
        s.keep = not sigil_is_discardable(s.level, s.lock_status, s.equip_status)
    return sigils


def wrightstone_filter(wrightstones: List[Wrightstone]) -> List[Wrightstone]:
    for w in wrightstones:
        w.keep = not wrightstone_is_discardable(w.level1, w.lock_status)
    return wrightstones


# =============================================================================
# Scans
# =============================================================================

def get_sigils(index: TableIndex) -> List[Sigil]:
    """
    Enumerate every present sigil in the sigil id range.

    Args:
        index: TableIndex over the loaded slot data

    Returns:
        Sigils in unit id order, keep flag not yet evaluated
    """
    sigils = []
    for uid in range(fmt.SIGIL_ID_FIRST, fmt.SIGIL_ID_LAST + 1):
        present = index.try_uint(fmt.SIGIL_PRESENT, uid)
        if not present:
            continue

        level = index.try_int(fmt.SIGIL_LEVEL, uid)
        equip_status = index.try_uint(fmt.SIGIL_EQUIP_STATUS, uid)
        lock_status = index.try_uint(fmt.SIGIL_LOCK_STATUS, uid)
        type_hash = index.try_uint(fmt.SIGIL_TYPE, uid)
        if level is None or equip_status is None or lock_status is None or type_hash is None:
            continue

        sigils.append(Sigil(unit_id=uid,
                            level=level,
                            type_hash=type_hash,
                            equip_status=equip_status,
                            lock_status=lock_status))
    return sigils


def get_wrightstones(index: TableIndex) -> List[Wrightstone]:
    """
    Enumerate every occupied wrightstone slot in the wrightstone id range.

    Args:
        index: TableIndex over the loaded slot data

    Returns:
        Wrightstones in unit id order, keep flag not yet evaluated
    """
    wrightstones = []
    for uid in range(fmt.WRIGHTSTONE_ID_FIRST, fmt.WRIGHTSTONE_ID_LAST + 1):
        stone_type = index.try_uint(fmt.WRIGHTSTONE_TYPE, uid)
        if stone_type is None or stone_type == fmt.EMPTY_SENTINEL:
            continue

        exist_status = index.try_uint(fmt.WRIGHTSTONE_EXIST_STATUS, uid)
        if exist_status is None:
            continue

        locked = index.try_bool(fmt.WRIGHTSTONE_LOCKED, uid)
        if locked is None:
            continue

        level1, level2, level3 = (
            index.get_int(fmt.WRIGHTSTONE_LEVELS, fmt.wrightstone_level_unit(uid, trait))
            for trait in range(3))

        wrightstones.append(Wrightstone(unit_id=uid,
                                        level1=level1,
                                        level2=level2,
                                        level3=level3,
                                        exist_status=exist_status,
                                        lock_status=locked))
    return wrightstones
