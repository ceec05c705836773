#!/usr/bin/env python3
"""
Ticket Valuation Tables
=======================

Lottery ticket values come from two CSV files kept next to the tool:

| File                          | Columns                                   |
|-------------------------------|-------------------------------------------|
| sigil_id_with_ticket.csv      | name, ..., ..., type hash (dec), tickets  |
| wrightstone_with_ticket.csv   | level1, level2, level3, tickets           |

The first row is a header. Rows that are short or do not parse are skipped.
A missing file is not an error: every item is then worth 0 tickets, and the
scan summary carries a warning so the user knows why.
"""

import csv
import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import gbfr_format as fmt

SIGIL_TICKET_CSV = 'sigil_id_with_ticket.csv'
WRIGHTSTONE_TICKET_CSV = 'wrightstone_with_ticket.csv'

SIGIL_HASH_COLUMN = 3
SIGIL_TICKET_COLUMN = 4


def _parse_int(text: str, low: int, high: int) -> Optional[int]:
    try:
        value = int(text.strip())
    except ValueError:
        return None
    if not low <= value <= high:
        return None
    return value


def _data_rows(path: str):
    with open(path, 'r', encoding='utf-8-sig', newline='') as f:
        reader = csv.reader(f)
        next(reader, None)
        for row in reader:
            if row and any(cell.strip() for cell in row):
                yield row


def load_sigil_ticket_map(path: str) -> Dict[int, int]:
    """
    Load sigil type hash -> ticket count.

    Args:
        path: CSV path

    Returns:
        Mapping, empty if the file does not exist
    """
    ticket_map = {}
    if not os.path.isfile(path):
        return ticket_map

    for row in _data_rows(path):
        if len(row) <= SIGIL_TICKET_COLUMN:
            continue
        type_hash = _parse_int(row[SIGIL_HASH_COLUMN], 0, fmt.UINT32_MAX)
        tickets = _parse_int(row[SIGIL_TICKET_COLUMN], fmt.INT32_MIN, fmt.INT32_MAX)
        if type_hash is None or tickets is None:
            continue
        ticket_map[type_hash] = tickets
    return ticket_map


def load_wrightstone_ticket_map(path: str) -> Dict[Tuple[int, int, int], int]:
    """Load (level1, level2, level3) -> ticket count; empty if the file is missing."""
    ticket_map = {}
    if not os.path.isfile(path):
        return ticket_map

    for row in _data_rows(path):
        if len(row) < 4:
            continue
        parsed = [_parse_int(cell, fmt.INT32_MIN, fmt.INT32_MAX) for cell in row[:4]]
        if any(v is None for v in parsed):
            continue
        level1, level2, level3, tickets = parsed
        ticket_map[(level1, level2, level3)] = tickets
    return ticket_map


@dataclass
class TicketTables:
    """Both lookup tables plus where they came from."""
    sigil_map: Dict[int, int] = field(default_factory=dict)
    wrightstone_map: Dict[Tuple[int, int, int], int] = field(default_factory=dict)
    missing_files: List[str] = field(default_factory=list)

    @classmethod
    def load(cls, data_dir: str = None) -> 'TicketTables':
        if data_dir is None:
            data_dir = fmt.default_data_dir()
        sigil_path = os.path.join(data_dir, SIGIL_TICKET_CSV)
        wright_path = os.path.join(data_dir, WRIGHTSTONE_TICKET_CSV)

        missing = [p for p in (sigil_path, wright_path) if not os.path.isfile(p)]
        return cls(sigil_map=load_sigil_ticket_map(sigil_path),
                   wrightstone_map=load_wrightstone_ticket_map(wright_path),
                   missing_files=missing)

    def warnings(self) -> List[str]:
        return [f"Ticket table not found, its items count as 0 tickets: {p}"
                for p in self.missing_files]


# =============================================================================
# Valuation
# =============================================================================

def calculate_sigil_tickets(sigils, sigil_map: Dict[int, int]):
    for s in sigils:
        s.ticket_count = sigil_map.get(s.type_hash, 0)
    return sigils


def calculate_wrightstone_tickets(wrightstones, wrightstone_map):
    for w in wrightstones:
        w.ticket_count = wrightstone_map.get(w.levels, 0)
    return wrightstones


def discarded_tickets(items: Iterable) -> int:
    """Sum of ticket values over items marked for discard; kept items add 0."""
    return sum(item.ticket_count for item in items if not item.keep)
