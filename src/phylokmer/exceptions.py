"""
Exception hierarchy for the phylokmer package.

All errors raised on purpose by phylokmer derive from `PhylokmerError`, so a
caller can catch the whole family at once. The concrete classes also derive
from the matching built-in (`ValueError`, `RuntimeError`) so code written
against the built-ins keeps working.
"""


class PhylokmerError(Exception):
    """Base exception for phylokmer."""


class InvalidArgumentError(PhylokmerError, ValueError):
    """
    Raised when a public operation receives arguments it cannot work with.

    Examples are a k-mer size outside the supported range, sequence and genus
    lists of different lengths, or a sequence of an unsupported type. These
    errors are raised before any work is done, so no partial result exists.
    """


class InvalidBaseError(PhylokmerError, ValueError):
    """
    Raised when a window contains a symbol other than A, C, G or T.

    K-mer extraction catches this per window and drops the window; it only
    reaches the caller through a direct `encode_window` call.
    """

    def __init__(self, symbol: str, position: int) -> None:
        self.symbol = symbol
        self.position = position
        super().__init__(f"Invalid base {symbol!r} at window position {position}.")


class InternalConsistencyError(PhylokmerError, RuntimeError):
    """Raised when builder state contradicts itself, e.g. an unregistered genus."""
