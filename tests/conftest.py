"""
Shared fixtures: ticket tables in a temp data dir and the synthetic saves
used across the suite.
"""

import pytest

from gbfr_format import EMPTY_SENTINEL
from slot_data import SlotData
from save_factory import (ATTACK_SIGIL_HASH, add_currencies, add_hash_seed, add_sigil,
                          add_wrightstone, write_save, write_ticket_tables)


@pytest.fixture
def data_dir(tmp_path):
    return write_ticket_tables(tmp_path / "Data")


@pytest.fixture
def sigil_slot():
    """One discardable sigil worth 3 tickets, 10 vouchers."""
    slot = SlotData()
    add_currencies(slot, vouchers=10, secondary=100)
    add_sigil(slot, 30001, level=5, type_hash=ATTACK_SIGIL_HASH, equip=EMPTY_SENTINEL, lock=0)
    add_hash_seed(slot, 17)
    return slot


@pytest.fixture
def wrightstone_slot():
    """One wrightstone that must be kept (first trait level 25)."""
    slot = SlotData()
    add_currencies(slot, vouchers=10, secondary=0)
    add_wrightstone(slot, 50002, stone_type=1234, levels=(25, 0, 0))
    return slot


@pytest.fixture
def mixed_slot():
    """
    Sigils: 30001 discard (3), 30002 too high, 30003 locked, 30004 equipped,
    30005 discard but not in the table.
    Wrightstones: 50001 discard (2), 50002 kept, 50003 locked, 50004 empty slot.
    """
    slot = SlotData()
    add_currencies(slot, vouchers=10, secondary=100)
    add_sigil(slot, 30001, level=5, type_hash=ATTACK_SIGIL_HASH)
    add_sigil(slot, 30002, level=15, type_hash=ATTACK_SIGIL_HASH)
    add_sigil(slot, 30003, level=3, type_hash=ATTACK_SIGIL_HASH, lock=3)
    add_sigil(slot, 30004, level=3, type_hash=ATTACK_SIGIL_HASH, equip=1)
    add_sigil(slot, 30005, level=1, type_hash=0xAAAA00FF)
    add_wrightstone(slot, 50001, stone_type=1234, levels=(10, 5, 0))
    add_wrightstone(slot, 50002, stone_type=1234, levels=(25, 0, 0))
    add_wrightstone(slot, 50003, stone_type=1234, levels=(10, 5, 0), locked=True)
    add_wrightstone(slot, 50004, stone_type=EMPTY_SENTINEL, levels=(10, 5, 0))
    add_hash_seed(slot, 23)
    return slot


@pytest.fixture
def sigil_save(tmp_path, sigil_slot):
    return write_save(tmp_path / "SaveData1.dat", sigil_slot)


@pytest.fixture
def wrightstone_save(tmp_path, wrightstone_slot):
    return write_save(tmp_path / "SaveData2.dat", wrightstone_slot)


@pytest.fixture
def mixed_save(tmp_path, mixed_slot):
    return write_save(tmp_path / "SaveData3.dat", mixed_slot)
