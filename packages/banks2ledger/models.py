"""Data models and type aliases for ``banks2ledger``.

Plain frozen dataclasses carry records between the stages of a conversion
(ledger history → frequency model → decisions → ledger entries). The command
line options are validated by a Pydantic model so the CLI and library callers
share one set of rules.
"""

from __future__ import annotations

import codecs
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Classification engine
# ---------------------------------------------------------------------------

UNKNOWN_ACCOUNT = "Unknown"
"""Counter-account used when no account is statistically preferred."""

type Token = str

type FrequencyModel = Mapping[str, Mapping[str, int]]
"""Account name → token → occurrence count, mined from a ledger history.

Built once per run by :func:`banks2ledger.bayesian.build_model` and read-only
afterwards.
"""


@dataclass(frozen=True, slots=True)
class HistoricalEntry:
    """One parsed entry of the ledger history.

    ``accounts`` holds every posting account of the entry and ``tokens`` the
    tokenized descriptor of its first line.
    """

    date: str
    accounts: tuple[str, ...]
    tokens: tuple[Token, ...]


class CandidateScore(NamedTuple):
    """A ranked ``(probability, account)`` pair."""

    probability: float
    account: str


# ---------------------------------------------------------------------------
# Bank transactions and ledger output
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Transaction:
    """A bank transaction extracted from one CSV row.

    ``date`` is already in ledger form (``YYYY/MM/DD``) and ``amount`` is the
    canonically formatted amount string (``"-1,234.50"``).
    """

    date: str
    amount: str
    descr: str
    ref: str | None = None


@dataclass(frozen=True, slots=True)
class Verification:
    """A single output line of a ledger entry.

    Either a comment line (``comment`` set) or a posting with an ``account``
    and optionally an ``amount`` with its ``currency``.
    """

    account: str | None = None
    amount: str | None = None
    currency: str | None = None
    comment: str | None = None


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    """An assembled ledger entry ready for hooks and formatting."""

    date: str
    descr: str
    amount: str
    currency: str
    account: str
    counter_account: str
    ref: str | None = None
    verifs: tuple[Verification, ...] = ()


# ---------------------------------------------------------------------------
# Conversion options
# ---------------------------------------------------------------------------


def _single_char(v: str, what: str) -> str:
    if not isinstance(v, str) or len(v) != 1:
        raise ValueError(f"{what} must be a single character")
    return v


class ConvertOptions(BaseModel):
    """Validated options of a CSV → ledger conversion.

    Field names follow the long command line options (``--csv-file`` →
    ``csv_file``). Defaults match the CLI defaults.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    ledger_file: Path = Path("ledger.dat")
    csv_file: Path = Path("transactions.csv")
    csv_file_encoding: str = "UTF-8"
    account: str = "Assets:Checking"
    csv_field_separator: str = ","
    csv_skip_header_lines: int = Field(default=0, ge=0)
    csv_skip_trailer_lines: int = Field(default=0, ge=0)
    currency: str = "SEK"
    date_format: str = "yyyy-MM-dd"
    date_col: int = Field(default=0, ge=0)
    ref_col: int = -1
    amount_col: int = Field(default=2, ge=0)
    descr_col: str = "%3"
    amount_decimal_separator: str = "."
    amount_grouping_separator: str = ","
    hooks_file: Path | None = None
    debug: bool = False
    workers: int = Field(default=1, ge=1)

    @field_validator("ledger_file")
    @classmethod
    def _ledger_file_exists(cls, v: Path) -> Path:
        if not v.is_file():
            raise ValueError(f"Ledger file '{v}' not found")
        return v

    @field_validator("csv_file")
    @classmethod
    def _csv_file_exists(cls, v: Path) -> Path:
        if not v.is_file():
            raise ValueError(f"The specified transactions csv file '{v}' doesn't exist")
        return v

    @field_validator("hooks_file")
    @classmethod
    def _hooks_file_exists(cls, v: Path | None) -> Path | None:
        if v is not None and not v.is_file():
            raise ValueError(f"The specified hooks file '{v}' doesn't exist")
        return v

    @field_validator("csv_file_encoding")
    @classmethod
    def _known_encoding(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Invalid CSV file encoding")
        try:
            codecs.lookup(v)
        except LookupError as exc:
            raise ValueError(f"Unknown CSV file encoding: {v}") from exc
        return v

    @field_validator("account", "currency", "date_format")
    @classmethod
    def _non_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Must not be blank")
        return v

    @field_validator("date_format")
    @classmethod
    def _date_pattern(cls, v: str) -> str:
        from .csv_parser import compile_date_pattern

        compile_date_pattern(v)
        return v

    @field_validator("csv_field_separator")
    @classmethod
    def _field_separator(cls, v: str) -> str:
        return _single_char(v, "CSV field separator")

    @field_validator("amount_decimal_separator", "amount_grouping_separator")
    @classmethod
    def _amount_separator(cls, v: str) -> str:
        return _single_char(v, "Amount separator")

    @field_validator("descr_col")
    @classmethod
    def _descr_col_spec(cls, v: str) -> str:
        from .csv_parser import valid_descr_col_spec

        if not valid_descr_col_spec(v):
            raise ValueError(f"Invalid descriptor column spec: {v!r}")
        return v

    @field_validator("debug", mode="before")
    @classmethod
    def _strict_bool(cls, v: object) -> object:
        # Only the literal words are accepted from the command line.
        if isinstance(v, bool):
            return v
        if v in ("true", "false"):
            return v == "true"
        raise ValueError("Must be 'true' or 'false'")


__all__ = [
    "UNKNOWN_ACCOUNT",
    "CandidateScore",
    "ConvertOptions",
    "FrequencyModel",
    "HistoricalEntry",
    "LedgerEntry",
    "Token",
    "Transaction",
    "Verification",
]
