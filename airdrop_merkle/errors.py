"""Exception types raised across the airdrop tooling."""

from __future__ import annotations

from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from .csv_validator import ValidationError


class AirdropError(Exception):
    """Base class for every error raised by this package."""


class EmptyTreeError(AirdropError, ValueError):
    """Raised when a tree is requested for zero leaves."""


class InvalidInputError(AirdropError, ValueError):
    """Raised for malformed identities, hashes, snapshots or documents."""


class CsvValidationError(AirdropError, ValueError):
    def __init__(self, errors: List["ValidationError"]) -> None:
        self.errors = list(errors)
        super().__init__(f"Invalid csv file: {len(self.errors)} validation error(s)")


class NotEligibleError(AirdropError, LookupError):
    """Raised when an address has no record in a campaign."""


class PublicationError(AirdropError, RuntimeError):
    """Raised when Pinata or an IPFS node returns an unusable response."""
