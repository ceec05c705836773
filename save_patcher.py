#!/usr/bin/env python3
"""
GBFR Ticket Patcher
===================

Turns low-value inventory into lottery ticket vouchers and keeps the save
loadable by the game.

Usage:
    gbfr-ticket-patcher scan    SaveData1.dat
    gbfr-ticket-patcher patch   SaveData1.dat [--backup]
    gbfr-ticket-patcher convert SaveData1.dat
    gbfr-ticket-patcher backup  SaveData1.dat
    gbfr-ticket-patcher verify  SaveData1.dat

Patch pipeline:
    header -> tables -> index -> eligibility -> valuation -> mutation
    -> serialize (tables + hashes + footer) -> rewrite -> verify

Discarded items:
    Sigils        level <= 11, not locked, not equipped
    Wrightstones  first trait level < 20, not locked

Vouchers convert to transmarvel points at 1.33 each, rounded up.
"""

import os
import sys
import argparse
import traceback
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from gbfr_format import DEFAULT_FORMAT, FormatDescription, load_format_description
from item_rules import get_sigils, get_wrightstones, sigil_filter, wrightstone_filter
from save_errors import HashMismatchError, SavePatchError, StagingConflictError
from save_hashes import (find_mismatches, hashes_offset_of, read_slot_region, stored_hashes,
                         verify_hashes)
from save_header import SaveHeader, read_header
from save_mutations import (add_vouchers, clear_sigils, clear_wrightstones, convert_vouchers,
                            new_voucher_total, read_secondary, read_vouchers,
                            secondary_from_vouchers)
from save_writer import StagedSave, backup_file, temp_path_for
from slot_data import SlotData, decode_slot_data
from slot_serializer import serialize_slot_data, source_footer
from table_index import TableIndex
from ticket_tables import (TicketTables, calculate_sigil_tickets, calculate_wrightstone_tickets,
                           discarded_tickets)

__all__ = ['PatchOptions', 'SaveHandle', 'TicketSummary', 'PatchSummary',
           'load', 'compute_tickets', 'apply_patch', 'convert_vouchers_to_secondary',
           'backup_file', 'verify_hashes', 'main']


# =============================================================================
# Data Types
# =============================================================================

@dataclass
class PatchOptions:
    """What a patch run is allowed to touch and where its inputs live."""
    clear_sigils: bool = True
    clear_wrightstones: bool = True
    data_dir: Optional[str] = None
    format: FormatDescription = DEFAULT_FORMAT


@dataclass
class SaveHandle:
    """A loaded save: header, decoded tables and the slot region they came from."""
    path: str
    header: SaveHeader
    slot: SlotData
    slot_buf: bytes
    hashes_offset: int

    @property
    def stored_hashes(self) -> List[int]:
        return stored_hashes(self.slot_buf, self.hashes_offset)

    @property
    def footer(self) -> bytes:
        return source_footer(self.slot_buf)

    def build_index(self) -> TableIndex:
        return TableIndex(self.slot)


@dataclass
class TicketSummary:
    sigil_count: int = 0
    removed_sigil_count: int = 0
    wrightstone_count: int = 0
    removed_wrightstone_count: int = 0
    old_voucher: int = 0
    sigil_tickets: int = 0
    wrightstone_tickets: int = 0
    new_voucher: int = 0
    old_secondary: int = 0
    new_secondary: int = 0
    warnings: List[str] = field(default_factory=list)


@dataclass
class PatchSummary:
    output_path: str
    hash_verified: bool
    tickets: Optional[TicketSummary] = None


# =============================================================================
# Engine
# =============================================================================

def load(path: str) -> SaveHandle:
    """
    Read and decode a save file without changing it.

    Raises:
        InputNotFoundError, MalformedHeaderError, InvalidLayoutError
    """
    header = read_header(path)
    slot_buf = read_slot_region(path, header)
    hashes_offset = hashes_offset_of(slot_buf)
    slot = decode_slot_data(slot_buf[:hashes_offset])
    return SaveHandle(path=path, header=header, slot=slot, slot_buf=slot_buf,
                      hashes_offset=hashes_offset)


def _evaluate(index: TableIndex, options: PatchOptions):
    """Scan, value and filter both item kinds. Returns (sigils, wrightstones, summary)."""
    tables = TicketTables.load(options.data_dir)

    sigils = sigil_filter(calculate_sigil_tickets(get_sigils(index), tables.sigil_map))
    wrightstones = wrightstone_filter(
        calculate_wrightstone_tickets(get_wrightstones(index), tables.wrightstone_map))

    # A kind that is not cleared must not be paid out
    if not options.clear_sigils:
        for s in sigils:
            s.keep = True
    if not options.clear_wrightstones:
        for w in wrightstones:
            w.keep = True

    summary = TicketSummary(
        sigil_count=len(sigils),
        removed_sigil_count=sum(1 for s in sigils if not s.keep),
        wrightstone_count=len(wrightstones),
        removed_wrightstone_count=sum(1 for w in wrightstones if not w.keep),
        old_voucher=read_vouchers(index),
        sigil_tickets=discarded_tickets(sigils),
        wrightstone_tickets=discarded_tickets(wrightstones),
        old_secondary=read_secondary(index),
        warnings=tables.warnings(),
    )
    summary.new_voucher = new_voucher_total(summary.old_voucher, summary.sigil_tickets,
                                            summary.wrightstone_tickets)
    # Patching never writes the secondary currency
    summary.new_secondary = summary.old_secondary
    return sigils, wrightstones, summary


def compute_tickets(handle: SaveHandle, options: PatchOptions = None) -> TicketSummary:
    """
    Preview what apply_patch() would do to a loaded save.

    new_secondary is what a following convert would produce.

    Raises:
        ArithmeticOverflowError: a resulting currency does not fit 32 bits
    """
    options = options or PatchOptions()
    _, _, summary = _evaluate(handle.build_index(), options)
    summary.new_secondary = secondary_from_vouchers(summary.old_secondary, summary.new_voucher)
    return summary


def _patch_file(path: str, options: PatchOptions, verbose: bool,
                mutate: Callable[[TableIndex], object]):
    """Stage, mutate through mutate(index), rewrite, verify and commit one save."""
    staged = StagedSave(path, verbose=verbose)
    staged.stage_file()

    header = read_header(staged.temp_path)
    slot_buf = read_slot_region(staged.temp_path, header)
    hashes_offset = hashes_offset_of(slot_buf)
    # A source that does not verify means the hash layout is wrong for it
    mismatched = find_mismatches(slot_buf, options.format)
    if mismatched:
        raise HashMismatchError(staged.temp_path, mismatched)

    slot = decode_slot_data(slot_buf[:hashes_offset])
    if verbose:
        print(f"Header: {header}")
        print(f"Tables: {slot.record_count()} records, hashes at slot+0x{hashes_offset:X}")

    result = mutate(TableIndex(slot))

    new_slot, new_hashes_offset = serialize_slot_data(slot, source_footer(slot_buf), options.format)
    if verbose:
        print(f"Serialized tables: {new_hashes_offset} bytes (was {hashes_offset})")

    staged.rewrite(header, new_slot)
    verified = staged.verify(options.format)
    staged.commit()
    return PatchSummary(output_path=path, hash_verified=verified), result


def apply_patch(path: str, options: PatchOptions = None, verbose: bool = False) -> PatchSummary:
    """
    Clear discardable items, add their tickets to the vouchers and rewrite the save.

    Args:
        path: Save file, rewritten in place
        options: PatchOptions, defaults clear both item kinds
        verbose: Print progress

    Returns:
        PatchSummary with the ticket summary attached

    Raises:
        SavePatchError subclasses. After staging the original survives as
        <stem>_patcher_tmp<ext>.
    """
    options = options or PatchOptions()

    def mutate(index):
        sigils, wrightstones, summary = _evaluate(index, options)
        # Checked before any field changes
        new_voucher_total(summary.old_voucher, summary.sigil_tickets, summary.wrightstone_tickets)

        cleared_sigils = clear_sigils(index, sigils)
        cleared_stones = clear_wrightstones(index, wrightstones)
        add_vouchers(index, summary.sigil_tickets + summary.wrightstone_tickets)
        if verbose:
            print(f"Cleared {cleared_sigils} sigils, {cleared_stones} wrightstones")
            print(f"Vouchers: {summary.old_voucher} -> {summary.new_voucher}")
        return summary

    patch_summary, summary = _patch_file(path, options, verbose, mutate)
    patch_summary.tickets = summary
    return patch_summary


def convert_vouchers_to_secondary(path: str, options: PatchOptions = None,
                                  verbose: bool = False) -> PatchSummary:
    """
    Turn every voucher into transmarvel points (ceil(vouchers * 1.33)) and rewrite the save.

    Item tables are left alone.
    """
    options = options or PatchOptions()

    def mutate(index):
        old_vouchers, old_secondary, new_secondary = convert_vouchers(index)
        if verbose:
            print(f"Vouchers: {old_vouchers} -> 0")
            print(f"Transmarvel points: {old_secondary} -> {new_secondary}")
        return TicketSummary(old_voucher=old_vouchers, new_voucher=0,
                             old_secondary=old_secondary, new_secondary=new_secondary)

    patch_summary, summary = _patch_file(path, options, verbose, mutate)
    patch_summary.tickets = summary
    return patch_summary


# =============================================================================
# CLI
# =============================================================================

def print_summary(summary: TicketSummary, preview: bool = True) -> None:
    for warning in summary.warnings:
        print(f"WARNING: {warning}")
    print(f"Sigils:        {summary.sigil_count} found, {summary.removed_sigil_count} to remove "
          f"({summary.sigil_tickets} tickets)")
    print(f"Wrightstones:  {summary.wrightstone_count} found, {summary.removed_wrightstone_count} to remove "
          f"({summary.wrightstone_tickets} tickets)")
    print(f"Vouchers:      {summary.old_voucher} -> {summary.new_voucher}")
    if preview:
        print(f"Transmarvel:   {summary.old_secondary} -> {summary.new_secondary} (if converted)")


def _options_from_args(args) -> PatchOptions:
    fmt = load_format_description(args.layout) if args.layout else DEFAULT_FORMAT
    return PatchOptions(clear_sigils=not args.keep_sigils,
                        clear_wrightstones=not args.keep_wrightstones,
                        data_dir=args.data_dir,
                        format=fmt)


def _run(args) -> int:
    options = _options_from_args(args)

    if args.command == 'scan':
        handle = load(args.savefile)
        print(f"Header: {handle.header}")
        print()
        print_summary(compute_tickets(handle, options))
        return 0

    if args.command == 'backup':
        print(f"Backup written: {backup_file(args.savefile)}")
        return 0

    if args.command == 'verify':
        verify_hashes(args.savefile, options.format, verbose=args.verbose)
        print("Hashes:  PASS")
        return 0

    if args.command == 'patch':
        if args.backup:
            print(f"Backup written: {backup_file(args.savefile)}")
        result = apply_patch(args.savefile, options, verbose=args.verbose)
        print_summary(result.tickets, preview=False)
    else:
        result = convert_vouchers_to_secondary(args.savefile, options, verbose=args.verbose)
        print(f"Transmarvel:   {result.tickets.old_secondary} -> {result.tickets.new_secondary}")

    print()
    print(f"Output:  {result.output_path}")
    print(f"Hashes:  {'PASS' if result.hash_verified else 'FAIL'}")
    return 0


def main(argv=None):
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('savefile', help='Save file (e.g. SaveData1.dat)')
    common.add_argument('--data-dir', help='Directory holding the ticket CSV tables (default: Data/)')
    common.add_argument('--layout', help='JSON hash layout override')
    common.add_argument('--keep-sigils', action='store_true', help='Do not clear any sigil')
    common.add_argument('--keep-wrightstones', action='store_true', help='Do not clear any wrightstone')
    common.add_argument('-v', '--verbose', action='store_true', help='Print progress and tracebacks')

    parser = argparse.ArgumentParser(
        description='GBFR Ticket Patcher - Convert spare sigils and wrightstones into lottery tickets',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  gbfr-ticket-patcher scan SaveData1.dat             # Preview, nothing written
  gbfr-ticket-patcher patch SaveData1.dat --backup   # Backup, then patch
  gbfr-ticket-patcher convert SaveData1.dat          # Vouchers -> transmarvel points
        """
    )
    sub = parser.add_subparsers(dest='command', required=True)
    sub.add_parser('scan', parents=[common], help='Show what a patch would do')
    patch = sub.add_parser('patch', parents=[common], help='Clear items and add their tickets')
    patch.add_argument('--backup', action='store_true', help='Write <stem>_patcher_backup first')
    sub.add_parser('convert', parents=[common], help='Convert vouchers to transmarvel points')
    sub.add_parser('backup', parents=[common], help='Copy the save to <stem>_patcher_backup')
    sub.add_parser('verify', parents=[common], help='Check the slot hash table')

    args = parser.parse_args(argv)

    print("=" * 70)
    print("GBFR Ticket Patcher")
    print("=" * 70)
    print(f"Save file: {args.savefile}")
    print()

    try:
        return _run(args)
    except (SavePatchError, OSError, ValueError) as e:
        print(f"ERROR: {e}")
        if args.verbose:
            traceback.print_exc()
        temp_path = temp_path_for(args.savefile)
        if (args.command in ('patch', 'convert') and os.path.isfile(temp_path)
                and not isinstance(e, StagingConflictError)):
            print(f"Original save preserved at: {temp_path}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
