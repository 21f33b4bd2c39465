"""Validation and parsing of campaign recipient CSV files.

A campaign file has an ``address`` column followed by an ``amount`` column.
Every problem is collected as a ``ValidationError`` carrying the 1-based row
of the file it was found on (the header is row 1), so the caller can report
all of them at once instead of stopping at the first.
"""

from __future__ import annotations

import csv
import enum
import io
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Protocol, Sequence

import base58

from .errors import InvalidInputError
from .merkle_tree import MAX_AMOUNT, PUBKEY_LENGTH, MerkleLeaf


logger = logging.getLogger(__name__)

EVM_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")

AMOUNT_FORMAT_MESSAGE = (
    "Amounts should be positive, in normal notation, with an optional decimal point"
    " and a maximum number of decimals as provided by the query parameter."
)


class AddressKind(enum.Enum):
    SOLANA = "solana"
    EVM = "evm"

    @property
    def label(self) -> str:
        return "Solana" if self is AddressKind.SOLANA else "Ethereum"

    def is_valid(self, address: str) -> bool:
        if self is AddressKind.EVM:
            return bool(EVM_ADDRESS_PATTERN.match(address))
        try:
            return len(base58.b58decode(address)) == PUBKEY_LENGTH
        except ValueError:
            return False


@dataclass(frozen=True)
class ValidationError:
    row: int
    message: str


class ColumnValidator(Protocol):
    def validate_cell(self, cell: str, row_index: int) -> Optional[ValidationError]:
        ...

    def validate_header(self, cell: str) -> Optional[ValidationError]:
        ...


@dataclass(frozen=True)
class AddressColumnValidator:
    kind: AddressKind = AddressKind.SOLANA

    def validate_cell(self, cell: str, row_index: int) -> Optional[ValidationError]:
        if not self.kind.is_valid(cell):
            return ValidationError(row=row_index + 2, message=f"Invalid {self.kind.label} address")
        return None

    def validate_header(self, cell: str) -> Optional[ValidationError]:
        if cell.lower() != "address":
            return ValidationError(
                row=1,
                message=(
                    "CSV header invalid. The csv header should be `address` column."
                    " The address column is missing"
                ),
            )
        return None


class AmountColumnValidator:
    def __init__(self, decimals: int) -> None:
        if decimals < 0:
            raise InvalidInputError("decimals must be >= 0")
        self.decimals = decimals
        self.regex = re.compile(rf"^[+]?\d*\.?\d{{0,{decimals}}}$")

    def validate_cell(self, cell: str, row_index: int) -> Optional[ValidationError]:
        if not self.regex.match(cell):
            return ValidationError(row=row_index + 2, message=AMOUNT_FORMAT_MESSAGE)
        try:
            amount = Decimal(cell)
        except InvalidOperation:
            return ValidationError(row=row_index + 2, message=AMOUNT_FORMAT_MESSAGE)
        if amount == 0:
            return ValidationError(row=row_index + 2, message="The amount cannot be 0")
        if self.to_base_units(cell) > MAX_AMOUNT:
            return ValidationError(row=row_index + 2, message="The amount is too large")
        return None

    def validate_header(self, cell: str) -> Optional[ValidationError]:
        if cell.lower() != "amount":
            return ValidationError(
                row=1,
                message=(
                    "CSV header invalid. The csv header should contain `amount` column."
                    " The amount column is missing"
                ),
            )
        return None

    def to_base_units(self, cell: str) -> int:
        return int(Decimal(cell).scaleb(self.decimals))


def validate_csv_row(
    row: Sequence[str],
    row_index: int,
    validators: Sequence[ColumnValidator],
) -> List[ValidationError]:
    if len(row) < len(validators):
        return [ValidationError(row=row_index + 2, message="Insufficient columns")]
    errors: List[ValidationError] = []
    for cell, validator in zip(row, validators):
        error = validator.validate_cell(cell.strip(), row_index)
        if error is not None:
            errors.append(error)
    return errors


def validate_csv_header(
    header: Sequence[str], validators: Sequence[ColumnValidator]
) -> Optional[ValidationError]:
    if len(header) < len(validators):
        return ValidationError(row=1, message="Insufficient columns")
    for cell, validator in zip(header, validators):
        error = validator.validate_header(cell.strip())
        if error is not None:
            return error
    return None


@dataclass(frozen=True)
class CampaignRecord:
    address: str
    amount: int


@dataclass
class CampaignCsvParsed:
    address_kind: AddressKind
    records: List[CampaignRecord] = field(default_factory=list)
    validation_errors: List[ValidationError] = field(default_factory=list)

    @property
    def total_amount(self) -> int:
        return sum(record.amount for record in self.records)

    @property
    def number_of_recipients(self) -> int:
        return len(self.records)

    @property
    def is_valid(self) -> bool:
        return not self.validation_errors

    def to_leaves(self) -> List[MerkleLeaf]:
        if self.address_kind is not AddressKind.SOLANA:
            raise InvalidInputError("Merkle leaves can only be built for Solana recipients")
        return [
            MerkleLeaf(index=i, recipient=record.address, amount=record.amount)
            for i, record in enumerate(self.records)
        ]


def parse_campaign_csv(
    text: str,
    decimals: int,
    address_kind: AddressKind = AddressKind.SOLANA,
) -> CampaignCsvParsed:
    address_validator = AddressColumnValidator(address_kind)
    amount_validator = AmountColumnValidator(decimals)
    validators: List[ColumnValidator] = [address_validator, amount_validator]
    parsed = CampaignCsvParsed(address_kind=address_kind)

    try:
        rows = [row for row in csv.reader(io.StringIO(text)) if row]
    except csv.Error as exc:
        raise InvalidInputError(f"There was a problem in csv file parsing process: {exc}") from exc
    if not rows:
        parsed.validation_errors.append(ValidationError(row=1, message="The csv file is empty"))
        return parsed

    header_error = validate_csv_header(rows[0], validators)
    if header_error is not None:
        parsed.validation_errors.append(header_error)
        return parsed

    seen: set[str] = set()
    for row_index, row in enumerate(rows[1:]):
        errors = validate_csv_row(row, row_index, validators)
        if errors:
            parsed.validation_errors.extend(errors)
            continue
        address = row[0].strip()
        if address.lower() in seen:
            parsed.validation_errors.append(
                ValidationError(row=row_index + 2, message=f"Duplicate address {address}")
            )
            continue
        seen.add(address.lower())
        amount = amount_validator.to_base_units(row[1].strip())
        parsed.records.append(CampaignRecord(address=address, amount=amount))

    if not parsed.records and not parsed.validation_errors:
        parsed.validation_errors.append(
            ValidationError(row=2, message="The csv file does not contain any recipients")
        )
    logger.debug(
        "Parsed campaign csv: %d recipients, %d validation errors",
        len(parsed.records),
        len(parsed.validation_errors),
    )
    return parsed
