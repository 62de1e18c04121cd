from __future__ import annotations


class InvalidConfiguration(ValueError):
    """Raised when a run-level parameter violates a component precondition."""


class InvalidVariant(ValueError):
    """Raised when a panel site is structurally inconsistent (alleles vs. paths)."""
