#!/usr/bin/env python3
"""
Save Patcher Errors
===================

Every failure the engine reports is fatal to the current operation and is
never retried. Header and layout errors are raised before anything is
mutated; a hash mismatch is raised after the rewritten file exists.
"""


class SavePatchError(Exception):
    """Base class for all save patcher failures."""


class InputNotFoundError(SavePatchError, FileNotFoundError):
    """Save path is empty or does not exist."""


class StagingConflictError(SavePatchError, FileExistsError):
    """A temp copy from an earlier failed run is still on disk."""


class MalformedHeaderError(SavePatchError, ValueError):
    """Header could not be parsed (file truncated)."""


class InvalidLayoutError(SavePatchError, ValueError):
    """Header parsed but its regions do not fit the file (corrupt or foreign file)."""


class HashRangeInvalidError(SavePatchError, ValueError):
    """A hash section does not fit in front of the hash table."""

    def __init__(self, index: int, start_offset: int, sub_size: int, hashes_offset: int):
        self.index = index
        self.start_offset = start_offset
        self.sub_size = sub_size
        self.hashes_offset = hashes_offset
        super().__init__(
            f"Hash section {index} invalid: start=0x{start_offset:X} sub_size=0x{sub_size:X} "
            f"hashes_offset=0x{hashes_offset:X}")


class HashMismatchError(SavePatchError, ValueError):
    """One or more stored section hashes differ from the recomputed ones."""

    def __init__(self, path: str, mismatched: list):
        self.path = path
        self.mismatched = list(mismatched)
        sections = ', '.join(str(i) for i in self.mismatched)
        super().__init__(f"Detected hash mismatch in {path} (sections: {sections})")


class ArithmeticOverflowError(SavePatchError, OverflowError):
    """A currency result does not fit its 32-bit storage."""


class SerializationFailureError(SavePatchError, ValueError):
    """Table structure could not be encoded within its bounds."""
