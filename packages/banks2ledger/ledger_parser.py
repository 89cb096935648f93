"""Ledger history parsing and ledger entry output.

Only the subset of the ledger-cli file format needed to mine token/account
co-occurrence is understood:

- entries are separated by blank lines
- lines starting with one of ``; # | * %`` are comments, and anything after
  ``;`` on other lines is an inline comment
- the first line of an entry is ``<date> <descriptor>``; text after ``|`` is
  a private annotation and is ignored (not part of ledger-cli)
- every following line is a posting whose account name ends at the first
  double space (``Expenses:Food  SEK 12.00``)
"""

from __future__ import annotations

import re
import sys
from collections.abc import Iterator, Sequence
from dataclasses import replace
from os import PathLike
from pathlib import Path
from typing import IO

from .bayesian import build_model
from .csv_parser import clip_string
from .logging_setup import get_logger
from .models import FrequencyModel, HistoricalEntry, LedgerEntry, Verification
from .tokens import tokenize

_logger = get_logger("banks2ledger.ledger_parser")

_COMMENT_LINE_MARKERS = frozenset(";#|*%")
_NEWLINE_RE = re.compile(r"\r?\n")
_ENTRY_SEPARATOR_RE = re.compile(r"\r?\n\r?\n")
_INLINE_COMMENT = ";"
_ANNOTATION_SEPARATOR = "|"
_ACCOUNT_END = "  "

# Width of the account column in generated postings.
ACCOUNT_COLUMN_WIDTH = 38


class LedgerFileError(OSError):
    """The ledger history file could not be read.

    ``kind`` is ``"file-not-found"`` or ``"io-error"``; ``file`` is the path.
    """

    def __init__(self, message: str, *, kind: str, file: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.file = file


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def is_comment_line(line: str) -> bool:
    """True for full-line comments (first character is a comment marker)."""

    return bool(line) and line[0] in _COMMENT_LINE_MARKERS


def split_ledger_entry(entry: str) -> list[str]:
    """Split an entry into its meaningful lines (comments and blanks removed)."""

    lines = (ln for ln in _NEWLINE_RE.split(entry) if not is_comment_line(ln))
    clipped = (clip_string(_INLINE_COMMENT, ln).strip() for ln in lines)
    return [ln for ln in clipped if ln]


def parse_ledger_entry(lines: Sequence[str]) -> HistoricalEntry:
    """Parse the lines of one entry into a :class:`HistoricalEntry`."""

    first_line, *postings = lines
    first_line = clip_string(_ANNOTATION_SEPARATOR, first_line)
    date, _, descr = first_line.partition(" ")
    return HistoricalEntry(
        date=date,
        accounts=tuple(clip_string(_ACCOUNT_END, p) for p in postings),
        tokens=tuple(tokenize(descr)),
    )


def iter_ledger_entries(text: str) -> Iterator[HistoricalEntry]:
    """Yield every entry of a ledger file's text that has at least one posting."""

    for chunk in _ENTRY_SEPARATOR_RE.split(text):
        chunk = chunk.strip()
        if not chunk:
            continue
        lines = split_ledger_entry(chunk)
        if len(lines) > 1:
            yield parse_ledger_entry(lines)


def parse_ledger(path: str | PathLike[str]) -> FrequencyModel:
    """Read a ledger file and build its frequency model.

    The model is returned only once the whole file has been read and parsed.
    Read failures raise :class:`LedgerFileError`.
    """

    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise LedgerFileError(
            f"Failed to read ledger file: {exc}", kind="file-not-found", file=str(p)
        ) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise LedgerFileError(
            f"Error reading ledger file '{p}': {exc}", kind="io-error", file=str(p)
        ) from exc

    _logger.info("parsing ledger history %s", p)
    return build_model(iter_ledger_entries(text))


def dump_acc_maps(model: FrequencyModel, out: IO[str]) -> None:
    """Write a human-readable dump of ``model``; accounts by name, tokens by count."""

    for account in sorted(model):
        out.write(f"'{account}':\n")
        counts = sorted(model[account].items(), key=lambda kv: kv[1], reverse=True)
        for token, count in counts:
            out.write(f" {count:6d}  '{token}'\n")
        out.write("\n")


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def add_default_verifications(entry: LedgerEntry) -> LedgerEntry:
    """Attach the default two postings to ``entry``.

    A negative amount is booked on the counter-account (without its sign) and
    balanced by the originating account; otherwise the originating account
    receives the amount and the counter-account balances it.
    """

    if entry.amount.startswith("-"):
        verifs = (
            Verification(
                account=entry.counter_account,
                amount=entry.amount[1:],
                currency=entry.currency,
            ),
            Verification(account=entry.account),
        )
    else:
        verifs = (
            Verification(account=entry.account, amount=entry.amount, currency=entry.currency),
            Verification(account=entry.counter_account),
        )
    return replace(entry, verifs=verifs)


def format_ledger_entry(entry: LedgerEntry) -> str:
    """Render ``entry`` and its verifications in ledger-cli syntax."""

    head = f"{entry.date} "
    if entry.ref:
        head += f"({entry.ref}) "
    lines = [head + entry.descr]
    for v in entry.verifs:
        if v.comment is not None:
            lines.append(f"    ; {v.comment}")
        elif v.amount is None:
            lines.append(f"    {v.account}")
        else:
            lines.append(f"    {v.account:<{ACCOUNT_COLUMN_WIDTH}}{v.currency} {v.amount}")
    return "\n".join(lines) + "\n\n"


def print_ledger_entry(entry: LedgerEntry, out: IO[str] | None = None) -> None:
    """Write ``entry`` followed by a blank line to ``out`` (``sys.stdout`` by default)."""

    (out or sys.stdout).write(format_ledger_entry(entry))


__all__ = [
    "ACCOUNT_COLUMN_WIDTH",
    "LedgerFileError",
    "add_default_verifications",
    "dump_acc_maps",
    "format_ledger_entry",
    "is_comment_line",
    "iter_ledger_entries",
    "parse_ledger",
    "parse_ledger_entry",
    "print_ledger_entry",
    "split_ledger_entry",
]
