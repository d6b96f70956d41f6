# common/errors.py
# -*- coding: utf-8 -*-
"""
Exception taxonomy for the bootstrap.

Resolver and configuration errors abort a run before any module starts.
Validation, execution and verification errors are raised inside the
orchestrator's per-module wrapper and never escape it. Rollback errors are
logged as warnings.
"""

from typing import Optional


class BootstrapError(Exception):
    """Base class for bootstrap failures."""

    def __init__(
        self,
        message: str,
        module_id: Optional[str] = None,
        returncode: Optional[int] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.module_id = module_id
        self.returncode = returncode
        self.original_error = original_error
        super().__init__(message)

    def diagnosis(self) -> str:
        """One-line description naming the module and exit status when known."""
        parts = []
        if self.module_id:
            parts.append(f"[{self.module_id}]")
        parts.append(str(self))
        if self.returncode is not None:
            parts.append(f"(exit status {self.returncode})")
        return " ".join(parts)


class ConfigurationError(BootstrapError):
    """Settings could not be loaded or failed validation."""


class ResolverError(BootstrapError):
    """The module graph is invalid: cycle, missing dependency, duplicate ordinal."""


class ValidationError(BootstrapError):
    """A module's preconditions are not met."""


class ExecutionError(BootstrapError):
    """A module's main action failed."""


class VerificationError(BootstrapError):
    """A module reported success but its post-condition check failed."""


class RollbackError(BootstrapError):
    """Undoing a module or restoring a backup failed."""


class AtomicWriteError(OSError):
    """An atomic write could not be completed; the target is unchanged."""


class DirectoryNotWritableError(AtomicWriteError):
    """The directory that should receive the file is not writable."""


class BackupError(OSError):
    """A backup could not be taken or restored."""
