#!/usr/bin/env python3
"""
Table Index
===========

O(1) lookup over the three record tables of a SlotData, keyed by
(id_type, unit_id). The index maps keys to the SlotData's own records, so a
write through the index is what encode_slot_data() later serializes.

Read paths return a default (0 / False) or None for missing records.
Write paths skip missing records; the engine never creates records.
"""

from typing import Dict, Optional, Tuple

from slot_data import SlotData, SaveDataUnit

Key = Tuple[int, int]


def _index(units) -> Dict[Key, SaveDataUnit]:
    # Duplicate keys: last record wins
    return {(u.id_type, u.unit_id): u for u in units}


def _first(unit: Optional[SaveDataUnit]):
    if unit is None or not unit.values:
        return None
    return unit.values[0]


def _write_first(unit: Optional[SaveDataUnit], value) -> bool:
    if unit is None or not unit.values:
        return False
    unit.values[0] = value
    return True


class TableIndex:
    """Lookup structure over one SlotData, rebuilt for every operation."""

    def __init__(self, slot: SlotData):
        self.ints = _index(slot.int_table)
        self.uints = _index(slot.uint_table)
        self.bools = _index(slot.bool_table)
        self._uint_records = slot.uint_table

    # -------------------------------------------------------------------------
    # Optional reads: None when the record is missing or empty
    # -------------------------------------------------------------------------

    def try_int(self, id_type: int, unit_id: int) -> Optional[int]:
        return _first(self.ints.get((id_type, unit_id)))

    def try_uint(self, id_type: int, unit_id: int) -> Optional[int]:
        return _first(self.uints.get((id_type, unit_id)))

    def try_bool(self, id_type: int, unit_id: int) -> Optional[bool]:
        return _first(self.bools.get((id_type, unit_id)))

    # -------------------------------------------------------------------------
    # Defaulted reads
    # -------------------------------------------------------------------------

    def get_int(self, id_type: int, unit_id: int, default: int = 0) -> int:
        value = self.try_int(id_type, unit_id)
        return default if value is None else value

    def get_uint(self, id_type: int, unit_id: int, default: int = 0) -> int:
        value = self.try_uint(id_type, unit_id)
        return default if value is None else value

    def get_bool(self, id_type: int, unit_id: int, default: bool = False) -> bool:
        value = self.try_bool(id_type, unit_id)
        return default if value is None else value

    # -------------------------------------------------------------------------
    # Writes: True if a record was updated
    # -------------------------------------------------------------------------

    def set_int(self, id_type: int, unit_id: int, value: int) -> bool:
        return _write_first(self.ints.get((id_type, unit_id)), value)

    def set_uint(self, id_type: int, unit_id: int, value: int) -> bool:
        return _write_first(self.uints.get((id_type, unit_id)), value)

    def set_bool(self, id_type: int, unit_id: int, value: bool) -> bool:
        return _write_first(self.bools.get((id_type, unit_id)), bool(value))

    def first_uint_of_type(self, id_type: int) -> Optional[int]:
        """values[0] of the first uint record with this id_type, in table order."""
        for unit in self._uint_records:
            if unit.id_type == id_type:
                return _first(unit)
        return None
