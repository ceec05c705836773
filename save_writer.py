#!/usr/bin/env python3
"""
GBFR Save File Rewriter
=======================

Every patch works on a staged copy of the save:

    1. STAGED     original renamed to <stem>_patcher_tmp<ext>
    2. REWRITTEN  original path rewritten from the temp copy + new slot region
    3. VERIFIED   hashes of the rewritten file checked
    4. COMMITTED  temp copy deleted

Nothing here is crash-atomic. If any step fails the temp copy stays on disk
and is the file to recover from; staging refuses to run while it exists.

Output file layout:
    [0, slot_offset)          copied from the temp file
    0x2C (8 bytes)            new slot size
    [slot_offset, ...)        new slot region
"""

import os
import shutil
from enum import Enum

from gbfr_format import DEFAULT_FORMAT, SLOT_SIZE_FIELD_OFFSET, FormatDescription
from save_errors import InputNotFoundError, InvalidLayoutError, StagingConflictError
from save_hashes import verify_hashes
from save_header import SaveHeader, pack_slot_size

TEMP_SUFFIX = '_patcher_tmp'
BACKUP_SUFFIX = '_patcher_backup'


class PatchStage(Enum):
    NEW = 0
    STAGED = 1
    REWRITTEN = 2
    VERIFIED = 3
    COMMITTED = 4


def _sibling_path(path: str, suffix: str) -> str:
    directory, name = os.path.split(path)
    stem, ext = os.path.splitext(name)
    return os.path.join(directory, f"{stem}{suffix}{ext}")


def temp_path_for(path: str) -> str:
    return _sibling_path(path, TEMP_SUFFIX)


def backup_path_for(path: str) -> str:
    return _sibling_path(path, BACKUP_SUFFIX)


def _require_file(path: str) -> None:
    if not path or not path.strip():
        raise InputNotFoundError("Save path is empty")
    if not os.path.isfile(path):
        raise InputNotFoundError(f"Save file not found: {path}")


def backup_file(path: str) -> str:
    """
    Copy path to <stem>_patcher_backup<ext> next to it, replacing any older backup.

    Returns:
        The backup path
    """
    _require_file(path)
    backup_path = backup_path_for(path)
    shutil.copyfile(path, backup_path)
    return backup_path


def write_patched_file(source_path: str, output_path: str, header: SaveHeader, slot_buf: bytes) -> int:
    """
    Write output_path as source's prefix plus the new slot region.

    Args:
        source_path: File the prefix (header + region A) is copied from
        output_path: File to create or truncate
        header: Header of source_path
        slot_buf: New slot region

    Returns:
        Size of the written file
    """
    with open(source_path, 'rb') as f:
        prefix = bytearray(f.read(header.slot_offset))
    if len(prefix) != header.slot_offset:
        raise InvalidLayoutError(
            f"{source_path} ends at {len(prefix)} bytes, before the slot region at 0x{header.slot_offset:X}")

    prefix[SLOT_SIZE_FIELD_OFFSET:SLOT_SIZE_FIELD_OFFSET + 8] = pack_slot_size(len(slot_buf))

    with open(output_path, 'wb') as f:
        f.write(prefix)
        f.write(slot_buf)
        return f.tell()


class StagedSave:
    """
    One patch run over a save path, from staging to commit.

    Stages must be entered in order; out-of-order calls raise RuntimeError.
    """

    def __init__(self, path: str, verbose: bool = False):
        self.path = path
        self.temp_path = temp_path_for(path)
        self.stage = PatchStage.NEW
        self.verbose = verbose

    def _advance(self, expected: PatchStage, new: PatchStage) -> None:
        if self.stage != expected:
            raise RuntimeError(f"Cannot move to {new.name} from {self.stage.name}")
        self.stage = new

    def stage_file(self) -> str:
        """
        Rename the save to its temp path. Returns the temp path.

        Raises:
            StagingConflictError: the temp path already exists; it may be the
                only good copy left by an earlier failed run
        """
        _require_file(self.path)
        if os.path.exists(self.temp_path):
            raise StagingConflictError(
                f"{self.temp_path} already exists from an earlier run; "
                f"restore or remove it before patching again")
        directory = os.path.dirname(self.temp_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        os.replace(self.path, self.temp_path)
        self._advance(PatchStage.NEW, PatchStage.STAGED)
        if self.verbose:
            print(f"Staged {self.path} -> {self.temp_path}")
        return self.temp_path

    def rewrite(self, header: SaveHeader, slot_buf: bytes) -> int:
        if self.stage != PatchStage.STAGED:
            raise RuntimeError(f"Cannot rewrite from {self.stage.name}")
        written = write_patched_file(self.temp_path, self.path, header, slot_buf)
        self._advance(PatchStage.STAGED, PatchStage.REWRITTEN)
        if self.verbose:
            print(f"Wrote {self.path} ({written} bytes, slot region {len(slot_buf)} bytes)")
        return written

    def verify(self, fmt: FormatDescription = DEFAULT_FORMAT) -> bool:
        if self.stage != PatchStage.REWRITTEN:
            raise RuntimeError(f"Cannot verify from {self.stage.name}")
        verified = verify_hashes(self.path, fmt, verbose=self.verbose)
        self._advance(PatchStage.REWRITTEN, PatchStage.VERIFIED)
        return verified

    def commit(self) -> None:
        if self.stage != PatchStage.VERIFIED:
            raise RuntimeError(f"Cannot commit from {self.stage.name}")
        os.remove(self.temp_path)
        self._advance(PatchStage.VERIFIED, PatchStage.COMMITTED)
        if self.verbose:
            print(f"Removed {self.temp_path}")
