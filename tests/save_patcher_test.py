import os

import pytest

import save_writer
from gbfr_format import EMPTY_SENTINEL, INT32_MAX, SLOT_SIZE_FIELD_OFFSET, FormatDescription
from save_errors import (ArithmeticOverflowError, HashMismatchError, InputNotFoundError,
                         InvalidLayoutError, StagingConflictError)
from save_factory import ATTACK_SIGIL_HASH, add_currencies, add_sigil, write_save
from save_hashes import verify_hashes
from save_patcher import (PatchOptions, apply_patch, compute_tickets,
                          convert_vouchers_to_secondary, load, main)
from save_writer import backup_path_for, temp_path_for
from slot_data import SlotData


def failing_verify(path, fmt, verbose=False):
    raise HashMismatchError(path, [0])


def read_bytes(path):
    with open(path, 'rb') as f:
        return f.read()


def test_load(sigil_save, sigil_slot) -> None:
    handle = load(sigil_save)
    assert handle.slot == sigil_slot
    assert handle.header.slot_size == len(handle.slot_buf)
    assert len(handle.stored_hashes) == 10
    assert handle.build_index().get_int(1802, 145) == 10


def test_load_missing(tmp_path) -> None:
    with pytest.raises(InputNotFoundError):
        load(str(tmp_path / "SaveData9.dat"))


def test_compute_tickets_preview(mixed_save, data_dir) -> None:
    summary = compute_tickets(load(mixed_save), PatchOptions(data_dir=data_dir))
    assert summary.sigil_count == 5
    assert summary.removed_sigil_count == 2
    assert summary.sigil_tickets == 3
    assert summary.wrightstone_count == 3
    assert summary.removed_wrightstone_count == 1
    assert summary.wrightstone_tickets == 2
    assert summary.old_voucher == 10
    assert summary.new_voucher == 15
    assert summary.old_secondary == 100
    # 100 + ceil(15 * 1.33)
    assert summary.new_secondary == 120
    assert summary.warnings == []


def test_compute_tickets_does_not_write(mixed_save, data_dir) -> None:
    before = read_bytes(mixed_save)
    compute_tickets(load(mixed_save), PatchOptions(data_dir=data_dir))
    assert read_bytes(mixed_save) == before


def test_compute_tickets_warns_without_tables(sigil_save, tmp_path) -> None:
    summary = compute_tickets(load(sigil_save), PatchOptions(data_dir=str(tmp_path / "empty")))
    assert summary.sigil_tickets == 0
    assert summary.new_voucher == 10
    assert len(summary.warnings) == 2


def test_patch_single_sigil(sigil_save, data_dir) -> None:
    result = apply_patch(sigil_save, PatchOptions(data_dir=data_dir))

    assert result.output_path == sigil_save
    assert result.hash_verified is True
    assert not os.path.exists(temp_path_for(sigil_save))

    index = load(sigil_save).build_index()
    assert index.get_int(1802, 145) == 13
    assert index.get_int(2704, 30001) == 0
    assert index.get_uint(2702, 30001) == 0
    assert index.get_uint(2703, 30001) == EMPTY_SENTINEL
    assert verify_hashes(sigil_save)


def test_patch_keeps_high_level_wrightstone(wrightstone_save, data_dir) -> None:
    result = apply_patch(wrightstone_save, PatchOptions(data_dir=data_dir))

    assert result.tickets.removed_wrightstone_count == 0
    assert result.tickets.wrightstone_tickets == 0
    index = load(wrightstone_save).build_index()
    assert index.get_uint(2102, 50002) == 1234
    assert index.get_uint(2105, 50002) == 1
    assert index.get_bool(2104, 50002) is False
    assert index.get_int(1802, 145) == 10


def test_patch_mixed(mixed_save, data_dir) -> None:
    result = apply_patch(mixed_save, PatchOptions(data_dir=data_dir))
    assert result.tickets.new_voucher == 15

    index = load(mixed_save).build_index()
    assert index.get_int(1802, 145) == 15
    assert index.get_uint(2702, 30005) == 0
    assert index.get_uint(2102, 50001) == EMPTY_SENTINEL
    assert index.get_int(2704, 30002) == 15


def test_unchanged_save_round_trips_byte_for_byte(mixed_save, data_dir) -> None:
    before = read_bytes(mixed_save)
    assert verify_hashes(mixed_save)

    options = PatchOptions(clear_sigils=False, clear_wrightstones=False, data_dir=data_dir)
    result = apply_patch(mixed_save, options)

    assert result.hash_verified is True
    assert result.tickets.new_voucher == 10
    assert read_bytes(mixed_save) == before


def test_keep_sigils_pays_only_wrightstones(mixed_save, data_dir) -> None:
    result = apply_patch(mixed_save, PatchOptions(clear_sigils=False, data_dir=data_dir))
    assert result.tickets.sigil_tickets == 0
    assert result.tickets.new_voucher == 12
    index = load(mixed_save).build_index()
    assert index.get_int(2704, 30001) == 5


def test_slot_size_field_follows_new_region(mixed_save, data_dir) -> None:
    apply_patch(mixed_save, PatchOptions(data_dir=data_dir))
    data = read_bytes(mixed_save)
    slot_size = int.from_bytes(data[SLOT_SIZE_FIELD_OFFSET:SLOT_SIZE_FIELD_OFFSET + 8], 'little')
    assert load(mixed_save).header.slot_offset + slot_size == len(data)


def test_corrupt_header_keeps_temp(sigil_save, data_dir) -> None:
    data = bytearray(read_bytes(sigil_save))
    data[SLOT_SIZE_FIELD_OFFSET:SLOT_SIZE_FIELD_OFFSET + 8] = (len(data) * 2).to_bytes(8, 'little')
    with open(sigil_save, 'wb') as f:
        f.write(data)

    with pytest.raises(InvalidLayoutError):
        apply_patch(sigil_save, PatchOptions(data_dir=data_dir))

    assert not os.path.exists(sigil_save)
    assert read_bytes(temp_path_for(sigil_save)) == bytes(data)


def test_voucher_overflow_aborts(tmp_path, data_dir) -> None:
    slot = add_currencies(SlotData(), vouchers=INT32_MAX - 1)
    add_sigil(slot, 30001, level=5, type_hash=ATTACK_SIGIL_HASH)
    path = write_save(tmp_path / "SaveData1.dat", slot)
    original = read_bytes(path)

    with pytest.raises(ArithmeticOverflowError):
        apply_patch(path, PatchOptions(data_dir=data_dir))

    assert not os.path.exists(path)
    assert read_bytes(temp_path_for(path)) == original


def test_convert(sigil_save) -> None:
    result = convert_vouchers_to_secondary(sigil_save)

    assert result.hash_verified is True
    assert result.tickets.old_voucher == 10
    assert result.tickets.new_secondary == 114
    index = load(sigil_save).build_index()
    assert index.get_int(1802, 145) == 0
    assert index.get_int(1105, 0) == 114
    assert index.get_int(2704, 30001) == 5


def test_cli_scan(mixed_save, data_dir, capsys) -> None:
    assert main(['scan', mixed_save, '--data-dir', data_dir]) == 0
    out = capsys.readouterr().out
    assert "Vouchers:      10 -> 15" in out


def test_cli_patch_with_backup(sigil_save, data_dir, capsys) -> None:
    original = read_bytes(sigil_save)
    assert main(['patch', sigil_save, '--backup', '--data-dir', data_dir]) == 0
    assert read_bytes(backup_path_for(sigil_save)) == original
    assert "Hashes:  PASS" in capsys.readouterr().out


def test_cli_verify(sigil_save) -> None:
    assert main(['verify', sigil_save]) == 0


def test_cli_missing_file(tmp_path, capsys) -> None:
    assert main(['patch', str(tmp_path / "missing.dat")]) == 1
    assert "ERROR:" in capsys.readouterr().out


def test_cli_reports_temp_on_failure(sigil_save, data_dir, capsys) -> None:
    data = bytearray(read_bytes(sigil_save))
    data[SLOT_SIZE_FIELD_OFFSET:SLOT_SIZE_FIELD_OFFSET + 8] = (len(data) * 2).to_bytes(8, 'little')
    with open(sigil_save, 'wb') as f:
        f.write(data)

    assert main(['patch', sigil_save, '--data-dir', data_dir]) == 1
    assert temp_path_for(sigil_save) in capsys.readouterr().out


def test_wrong_layout_refuses_to_patch(sigil_save, data_dir) -> None:
    original = read_bytes(sigil_save)
    options = PatchOptions(data_dir=data_dir, format=FormatDescription(xxhash64_seed=0x99))

    with pytest.raises(HashMismatchError):
        apply_patch(sigil_save, options)

    assert read_bytes(temp_path_for(sigil_save)) == original


def test_patch_with_large_vouchers_ignores_conversion_preview(tmp_path, data_dir) -> None:
    slot = add_currencies(SlotData(), vouchers=1_700_000_000, secondary=0)
    add_sigil(slot, 30001, level=5, type_hash=ATTACK_SIGIL_HASH)
    path = write_save(tmp_path / "SaveData1.dat", slot)

    result = apply_patch(path, PatchOptions(data_dir=data_dir))

    assert result.hash_verified is True
    assert result.tickets.new_voucher == 1_700_000_003
    assert load(path).build_index().get_int(1802, 145) == 1_700_000_003
    with pytest.raises(ArithmeticOverflowError):
        compute_tickets(load(path), PatchOptions(data_dir=data_dir))


def test_mismatch_after_rewrite_keeps_both_files(sigil_save, data_dir, monkeypatch) -> None:
    original = read_bytes(sigil_save)

    monkeypatch.setattr(save_writer, 'verify_hashes', failing_verify)

    with pytest.raises(HashMismatchError):
        apply_patch(sigil_save, PatchOptions(data_dir=data_dir))

    rewritten = read_bytes(sigil_save)
    assert rewritten != original
    assert verify_hashes(sigil_save)
    assert load(sigil_save).build_index().get_int(1802, 145) == 13
    assert read_bytes(temp_path_for(sigil_save)) == original


def test_second_patch_after_failure_keeps_recovery_copy(sigil_save, data_dir, monkeypatch) -> None:
    original = read_bytes(sigil_save)
    monkeypatch.setattr(save_writer, 'verify_hashes', failing_verify)
    with pytest.raises(HashMismatchError):
        apply_patch(sigil_save, PatchOptions(data_dir=data_dir))
    monkeypatch.undo()

    with pytest.raises(StagingConflictError):
        apply_patch(sigil_save, PatchOptions(data_dir=data_dir))
    assert read_bytes(temp_path_for(sigil_save)) == original
