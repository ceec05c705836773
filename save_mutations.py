#!/usr/bin/env python3
"""
Save Mutations
==============

In-place edits applied through a TableIndex:

* Clearing discarded sigils and wrightstones back to their empty on-disk
  representation (records are reset, never deleted).
* Adding the tickets of discarded items to the voucher count.
* Converting vouchers into transmarvel points.

Clearing tables (field, table, new value):

| Item        | Field | Table | Value      |
|-------------|-------|-------|------------|
| Sigil       | 2704  | int   | 0          |
| Sigil       | 2702  | uint  | 0          |
| Sigil       | 2703  | uint  | sentinel   |
| Sigil       | 2706  | uint  | sentinel   |
| Sigil       | 2707  | uint  | 0          |
| Wrightstone | 2102  | uint  | sentinel   |
| Wrightstone | 2103  | uint  | 0          |
| Wrightstone | 2104  | bool  | False      |
| Wrightstone | 2105  | uint  | 0          |

The sigil row for 2702 zeroes the presence flag; 2703 (the type hash) is
reset to the sentinel. Both are what the game writes for an empty slot.
"""

import math
from decimal import Decimal
from typing import Tuple

import gbfr_format as fmt
from save_errors import ArithmeticOverflowError
from table_index import TableIndex

SIGIL_CLEAR_FIELDS = (
    ('int', fmt.SIGIL_LEVEL, 0),
    ('uint', fmt.SIGIL_PRESENT, 0),
    ('uint', fmt.SIGIL_TYPE, fmt.EMPTY_SENTINEL),
    ('uint', fmt.SIGIL_EQUIP_STATUS, fmt.EMPTY_SENTINEL),
    ('uint', fmt.SIGIL_LOCK_STATUS, 0),
)

WRIGHTSTONE_CLEAR_FIELDS = (
    ('uint', fmt.WRIGHTSTONE_TYPE, fmt.EMPTY_SENTINEL),
    ('uint', fmt.WRIGHTSTONE_UNIT, 0),
    ('bool', fmt.WRIGHTSTONE_LOCKED, False),
    ('uint', fmt.WRIGHTSTONE_EXIST_STATUS, 0),
)


def checked_int32(value: int, what: str) -> int:
    """Return value if it fits a signed 32-bit field, else raise."""
    if not fmt.INT32_MIN <= value <= fmt.INT32_MAX:
        raise ArithmeticOverflowError(f"{what} {value} does not fit a 32-bit signed field")
    return value


def _clear(index: TableIndex, unit_id: int, fields) -> None:
    setters = {'int': index.set_int, 'uint': index.set_uint, 'bool': index.set_bool}
    for table, id_type, value in fields:
        setters[table](id_type, unit_id, value)


def clear_sigils(index: TableIndex, sigils) -> int:
    """Reset every discarded sigil. Returns how many were cleared."""
    cleared = 0
    for s in sigils:
        if s.keep:
            continue
        _clear(index, s.unit_id, SIGIL_CLEAR_FIELDS)
        cleared += 1
    return cleared


def clear_wrightstones(index: TableIndex, wrightstones) -> int:
    """Reset every discarded wrightstone. Returns how many were cleared."""
    cleared = 0
    for w in wrightstones:
        if w.keep:
            continue
        _clear(index, w.unit_id, WRIGHTSTONE_CLEAR_FIELDS)
        cleared += 1
    return cleared


# =============================================================================
# Currencies
# =============================================================================

def read_vouchers(index: TableIndex) -> int:
    return index.get_int(fmt.VOUCHER_ID_TYPE, fmt.VOUCHER_UNIT_ID)


def read_secondary(index: TableIndex) -> int:
    return index.get_int(fmt.SECONDARY_ID_TYPE, fmt.SECONDARY_UNIT_ID)


def new_voucher_total(old_vouchers: int, *ticket_sums: int) -> int:
    """old + all ticket sums, or ArithmeticOverflowError if it leaves i32."""
    return checked_int32(old_vouchers + sum(ticket_sums), "Voucher count")


def secondary_from_vouchers(old_secondary: int, vouchers: int) -> int:
    """
    old_secondary + ceil(vouchers * 1.33), evaluated exactly.

    Raises:
        ArithmeticOverflowError: result does not fit i32
    """
    converted = math.ceil(Decimal(vouchers) * Decimal(fmt.VOUCHER_TO_SECONDARY_RATE))
    return checked_int32(old_secondary + converted, "Transmarvel points")


def add_vouchers(index: TableIndex, added: int) -> Tuple[int, int]:
    """
    Add tickets to the stored voucher count.

    The overflow check happens before the record is touched. A save without
    a voucher record is left as is.

    Returns:
        (old_vouchers, new_vouchers)
    """
    old = read_vouchers(index)
    new = new_voucher_total(old, added)
    index.set_int(fmt.VOUCHER_ID_TYPE, fmt.VOUCHER_UNIT_ID, new)
    return old, new


def convert_vouchers(index: TableIndex) -> Tuple[int, int, int]:
    """
    Move every voucher into transmarvel points.

    Item tables are not touched.

    Returns:
        (old_vouchers, old_secondary, new_secondary)
    """
    old_vouchers = read_vouchers(index)
    old_secondary = read_secondary(index)
    new_secondary = secondary_from_vouchers(old_secondary, old_vouchers)

    index.set_int(fmt.VOUCHER_ID_TYPE, fmt.VOUCHER_UNIT_ID, 0)
    index.set_int(fmt.SECONDARY_ID_TYPE, fmt.SECONDARY_UNIT_ID, new_secondary)
    return old_vouchers, old_secondary, new_secondary
