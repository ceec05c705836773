#!/usr/bin/env python3
"""
GBFR Slot Data - FlatBuffers Table Codec
========================================

The first part of the slot region is a FlatBuffers buffer holding three
parallel tables of typed key/value records.

Schema:
-------
    table IntSaveDataUnit  { IDType:uint; UnitID:int; ValueData:[int];  }
    table UIntSaveDataUnit { IDType:uint; UnitID:int; ValueData:[uint]; }
    table BoolSaveDataUnit { IDType:uint; UnitID:int; ValueData:[bool]; }

    table SaveDataBinary {
        IntTable:[IntSaveDataUnit];
        UIntTable:[UIntSaveDataUnit];
        BoolTable:[BoolSaveDataUnit];
    }
    root_type SaveDataBinary;

Decoding produces plain SaveDataUnit records owned by a SlotData; the
engine mutates those records in place and encode_slot_data() writes them
back out with a fresh flatbuffers.Builder.
"""

import struct
from dataclasses import dataclass, field
from typing import List, Tuple

import flatbuffers
from flatbuffers import encode, packer
from flatbuffers import number_types as N
from flatbuffers.table import Table

from save_errors import InvalidLayoutError, SerializationFailureError

# vtable offsets: field n lives at 4 + 2n
VT_ID_TYPE = 4
VT_UNIT_ID = 6
VT_VALUE_DATA = 8

VT_INT_TABLE = 4
VT_UINT_TABLE = 6
VT_BOOL_TABLE = 8

UNIT_FIELD_COUNT = 3
ROOT_FIELD_COUNT = 3


# =============================================================================
# Value Kinds
# =============================================================================

@dataclass(frozen=True)
class ValueKind:
    """Element type of a ValueData vector"""
    name: str
    flags: type
    size: int
    prepend: str    # Builder method used for one element
    default: object

    def check(self, unit: 'SaveDataUnit') -> None:
        """Raise SerializationFailureError if any value does not fit this kind."""
        if self.flags.min_val is None:
            return
        for value in unit.values:
            if not self.flags.min_val <= value <= self.flags.max_val:
                raise SerializationFailureError(
                    f"{self.name} record ({unit.id_type}, {unit.unit_id}) value {value} "
                    f"outside [{self.flags.min_val}, {self.flags.max_val}]")


INT_KIND = ValueKind('int', N.Int32Flags, 4, 'PrependInt32', 0)
UINT_KIND = ValueKind('uint', N.Uint32Flags, 4, 'PrependUint32', 0)
BOOL_KIND = ValueKind('bool', N.BoolFlags, 1, 'PrependBool', False)


# =============================================================================
# Records
# =============================================================================

@dataclass
class SaveDataUnit:
    """One (IDType, UnitID) record; values[0] is what the game reads."""
    id_type: int
    unit_id: int
    values: list = field(default_factory=list)

    @property
    def key(self) -> Tuple[int, int]:
        return (self.id_type, self.unit_id)


@dataclass
class SlotData:
    """Decoded SaveDataBinary. Owns every record the index points at."""
    int_table: List[SaveDataUnit] = field(default_factory=list)
    uint_table: List[SaveDataUnit] = field(default_factory=list)
    bool_table: List[SaveDataUnit] = field(default_factory=list)

    def tables(self):
        """(records, kind) for each table in schema order."""
        return ((self.int_table, INT_KIND),
                (self.uint_table, UINT_KIND),
                (self.bool_table, BOOL_KIND))

    def record_count(self) -> int:
        return len(self.int_table) + len(self.uint_table) + len(self.bool_table)


# =============================================================================
# Readers (flatc-style accessors)
# =============================================================================

class SaveDataUnitTable(object):
    __slots__ = ['_tab', '_kind']

    def __init__(self, buf, pos, kind: ValueKind):
        self._tab = Table(buf, pos)
        self._kind = kind

    def IDType(self):
        o = N.UOffsetTFlags.py_type(self._tab.Offset(VT_ID_TYPE))
        if o != 0:
            return self._tab.Get(N.Uint32Flags, o + self._tab.Pos)
        return 0

    def UnitID(self):
        o = N.UOffsetTFlags.py_type(self._tab.Offset(VT_UNIT_ID))
        if o != 0:
            return self._tab.Get(N.Int32Flags, o + self._tab.Pos)
        return 0

    def ValueData(self, j):
        o = N.UOffsetTFlags.py_type(self._tab.Offset(VT_VALUE_DATA))
        if o != 0:
            a = self._tab.Vector(o)
            return self._tab.Get(self._kind.flags, a + N.UOffsetTFlags.py_type(j * self._kind.size))
        return self._kind.default

    def ValueDataLength(self):
        o = N.UOffsetTFlags.py_type(self._tab.Offset(VT_VALUE_DATA))
        if o != 0:
            return self._tab.VectorLen(o)
        return 0


class SaveDataBinary(object):
    __slots__ = ['_tab']

    @classmethod
    def GetRootAs(cls, buf, offset=0):
        n = encode.Get(packer.uoffset, buf, offset)
        x = SaveDataBinary()
        x._tab = Table(buf, n + offset)
        return x

    def _units(self, vt_offset, kind):
        o = N.UOffsetTFlags.py_type(self._tab.Offset(vt_offset))
        if o == 0:
            return
        start = self._tab.Vector(o)
        for j in range(self._tab.VectorLen(o)):
            x = self._tab.Indirect(start + N.UOffsetTFlags.py_type(j) * 4)
            yield SaveDataUnitTable(self._tab.Bytes, x, kind)

    def IntTable(self):
        return self._units(VT_INT_TABLE, INT_KIND)

    def UIntTable(self):
        return self._units(VT_UINT_TABLE, UINT_KIND)

    def BoolTable(self):
        return self._units(VT_BOOL_TABLE, BOOL_KIND)


def _read_units(accessors) -> List[SaveDataUnit]:
    units = []
    for t in accessors:
        values = [t.ValueData(j) for j in range(t.ValueDataLength())]
        units.append(SaveDataUnit(t.IDType(), t.UnitID(), values))
    return units


def decode_slot_data(buf: bytes) -> SlotData:
    """
    Decode the SaveDataBinary at the start of a slot buffer.

    Trailing bytes (hash table, footer) are ignored.

    Args:
        buf: Slot region bytes

    Returns:
        SlotData with freshly built records
    """
    try:
        root = SaveDataBinary.GetRootAs(bytes(buf), 0)
        return SlotData(int_table=_read_units(root.IntTable()),
                        uint_table=_read_units(root.UIntTable()),
                        bool_table=_read_units(root.BoolTable()))
    except (struct.error, IndexError, TypeError) as e:
        raise InvalidLayoutError(f"Slot data is not a readable table structure: {e}") from e


# =============================================================================
# Writer
# =============================================================================

def max_encoded_size(slot: SlotData) -> int:
    """
    Upper bound on the encoded size of slot, vtable sharing ignored.

    Root: offset + vtable + table + alignment slack.
    Per table: length + one offset per record + slack.
    Per record: vtable + table + value vector + slack.
    """
    size = 4 + 16 + 4 * ROOT_FIELD_COUNT + 16
    for units, kind in slot.tables():
        size += 4 + 4 * len(units) + 8
        for unit in units:
            size += 16 + 16 + 4 + kind.size * len(unit.values) + 8
    return size


def _build_table(builder, units, kind):
    offsets = []
    for unit in units:
        kind.check(unit)
        prepend = getattr(builder, kind.prepend)

        builder.StartVector(kind.size, len(unit.values), kind.size)
        for value in reversed(unit.values):
            prepend(value)
        values = builder.EndVector()

        builder.StartObject(UNIT_FIELD_COUNT)
        builder.PrependUint32Slot(0, unit.id_type, 0)
        builder.PrependInt32Slot(1, unit.unit_id, 0)
        builder.PrependUOffsetTRelativeSlot(2, values, 0)
        offsets.append(builder.EndObject())

    builder.StartVector(4, len(offsets), 4)
    for off in reversed(offsets):
        builder.PrependUOffsetTRelative(off)
    return builder.EndVector()


def encode_slot_data(slot: SlotData) -> bytes:
    """
    Encode slot back into its canonical FlatBuffers form.

    Raises:
        SerializationFailureError: a value does not fit its field, or the
            output exceeds max_encoded_size()
    """
    bound = max_encoded_size(slot)
    builder = flatbuffers.Builder(1024)

    try:
        int_vec = _build_table(builder, slot.int_table, INT_KIND)
        uint_vec = _build_table(builder, slot.uint_table, UINT_KIND)
        bool_vec = _build_table(builder, slot.bool_table, BOOL_KIND)

        builder.StartObject(ROOT_FIELD_COUNT)
        builder.PrependUOffsetTRelativeSlot(0, int_vec, 0)
        builder.PrependUOffsetTRelativeSlot(1, uint_vec, 0)
        builder.PrependUOffsetTRelativeSlot(2, bool_vec, 0)
        root = builder.EndObject()
        builder.Finish(root)
    except (TypeError, struct.error) as e:
        raise SerializationFailureError(f"Could not encode slot data: {e}") from e

    encoded = bytes(builder.Output())
    if len(encoded) > bound:
        raise SerializationFailureError(
            f"Encoded slot data is {len(encoded)} bytes, above the {bound} byte bound")
    return encoded
