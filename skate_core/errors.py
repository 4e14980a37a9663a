"""Errors raised by core operations.

Every error is scoped to the single operation that raised it; callers decide
how to present it.
"""
from __future__ import annotations


class SkateCoreError(Exception):
    """Base class for all core errors."""


class ValidationError(SkateCoreError, ValueError):
    """Bad input: score value, run number, ids, settings."""


class InvalidStateError(SkateCoreError):
    """Operation is illegal for the current heat (or score) status."""


class PhaseNotCompleteError(SkateCoreError):
    """A phase transition was requested while heats are still open."""


class TerminalPhaseError(SkateCoreError):
    """There is no phase after the current one."""


class NotFoundError(SkateCoreError, LookupError):
    """A referenced heat, skater, category or setting does not exist."""


class ConcurrencyConflictError(SkateCoreError):
    """Lock timeout or version mismatch on a serialized operation."""


__all__ = [
    "SkateCoreError",
    "ValidationError",
    "InvalidStateError",
    "PhaseNotCompleteError",
    "TerminalPhaseError",
    "NotFoundError",
    "ConcurrencyConflictError",
]
