"""
Exception types raised by neuromod.

Both concrete errors subclass ``ValueError`` so callers that already guard
numerical code with ``except ValueError`` keep working.
"""

from __future__ import annotations


class NeuromodError(Exception):
    """Base class for all neuromod errors."""


class InsufficientDataError(NeuromodError, ValueError):
    """Raised when a fit needs at least two observations and gets fewer."""

    def __init__(self, n_obs: int, required: int = 2):
        self.n_obs = n_obs
        self.required = required
        super().__init__(
            f"Need at least {required} observations, got {n_obs}"
        )


class InvalidArgumentError(NeuromodError, ValueError):
    """Raised for malformed input detected before any computation."""
