"""Bank CSV → :class:`~banks2ledger.models.Transaction` extraction.

Columns are addressed by zero-based index. The descriptor is rendered from a
*column spec*, a small printf-like template:

- ``"%4"``: the fifth column
- ``"%4 %5"``: fifth and sixth column joined by a space
- ``"%4!%1 %2 %3!%7"``: the fifth column; when that is blank, columns two to
  four joined by spaces; when that is blank too, the eighth column

Amounts are normalized to ``"1,234.56"`` form and dates to ``YYYY/MM/DD``.
Parsing follows RFC 4180 via the stdlib :mod:`csv` module with a configurable
field separator.
"""

from __future__ import annotations

import csv
import functools
import re
from collections.abc import Iterator, Sequence
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from itertools import pairwise
from typing import TextIO

from .logging_setup import get_logger
from .models import ConvertOptions, Transaction

_logger = get_logger("banks2ledger.csv_parser")


class CsvEntryError(ValueError):
    """A CSV row could not be converted to a transaction.

    ``kind`` is one of ``"column-out-of-bounds"``, ``"date-parse-error"`` or
    ``"amount-parse-error"``; ``row`` is the 1-based row number in the file.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: str,
        row: int,
        column_count: int | None = None,
        value: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.row = row
        self.column_count = column_count
        self.value = value


# ---------------------------------------------------------------------------
# String helpers
# ---------------------------------------------------------------------------


def clip_string(endmark: str, s: str) -> str:
    """Return the part of ``s`` before the first ``endmark`` (all of it if absent)."""

    idx = s.find(endmark)
    return s if idx == -1 else s[:idx]


def unquote_string(s: str) -> str:
    """Strip one pair of matching single or double quotes around ``s``."""

    if len(s) < 3:
        return s
    if (s[0] == s[-1] == "'") or (s[0] == s[-1] == '"'):
        return s[1:-1]
    return s


def all_indices(s: str, sub: str) -> list[int]:
    """Every index at which ``sub`` starts within ``s``."""

    out: list[int] = []
    idx = s.find(sub)
    while idx != -1:
        out.append(idx)
        idx = s.find(sub, idx + 1)
    return out


def split_by_indices(s: str, ixs: Sequence[int]) -> list[str]:
    """Split ``s`` at ``ixs``; the characters at the indices are dropped."""

    bounds = [-1, *ixs, len(s)]
    return [s[start + 1 : end] for start, end in pairwise(bounds)]


# ---------------------------------------------------------------------------
# Column specs
# ---------------------------------------------------------------------------

_COLREF_RE = re.compile(r"%([0-9]+)")
_BAD_COLREF_RE = re.compile(r"%(?![0-9])")


def valid_descr_col_spec(spec: str) -> bool:
    """True when ``spec`` references at least one column and every ``%`` is followed by digits."""

    if not spec or not spec.strip():
        return False
    if _BAD_COLREF_RE.search(spec):
        return False
    return _COLREF_RE.search(spec) is not None


def format_colspec(cols: Sequence[str], colspec: str) -> str:
    """Render one alternative of a column spec and trim the result."""

    return _COLREF_RE.sub(lambda m: unquote_string(cols[int(m.group(1))]), colspec).strip()


def get_col(cols: Sequence[str], colspec: str) -> str:
    """Render ``colspec`` using the first alternative that is not blank."""

    alternatives = split_by_indices(colspec, all_indices(colspec, "!"))
    rendered = ""
    for alt in alternatives:
        rendered = format_colspec(cols, alt)
        if rendered:
            break
    return rendered


# ---------------------------------------------------------------------------
# Amounts and dates
# ---------------------------------------------------------------------------

_LEADING_GARBAGE_RE = re.compile(r".+?(?=-?[0-9])", re.DOTALL)
_NUMBER_RE = re.compile(r"([-+]?[0-9]*\.?[0-9]+).*", re.DOTALL)


def format_value(value: float | int | Decimal) -> str:
    """Render an amount with thousands separators and two decimals (``1,234.57``).

    Rounds half up and never depends on the process locale.
    """

    d = value if isinstance(value, Decimal) else Decimal(str(value))
    q = d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{q:,.2f}"


def convert_amount(
    raw: str | None,
    decimal_separator: str = ".",
    grouping_separator: str = ",",
) -> str:
    """Extract the number from a bank amount cell and format it canonically.

    Anything before the first (optionally negative) digit and after the number
    is ignored, so ``"usd 10,123.45"`` and ``"-123.45 kr"`` both work.
    """

    if raw is None:
        raise ValueError("Amount column value is nil")

    s = _LEADING_GARBAGE_RE.sub("", " " + raw, count=1)
    s = s.replace(grouping_separator, "").replace(decimal_separator, ".")
    m = _NUMBER_RE.fullmatch(s)
    if m is None:
        raise ValueError(f"No valid number found in amount: {raw!r}")
    try:
        return format_value(Decimal(m.group(1)))
    except InvalidOperation as exc:
        raise ValueError(f"No valid number found in amount: {raw!r}") from exc


# Java-style (java.time) date pattern letters → regex fragments, longest first.
# Two-letter fields are fixed width; ``yy`` is a year in 2000-2099.
_DATE_PATTERN_PARTS = (
    ("yyyy", r"(?P<year>[0-9]{4})"),
    ("yy", r"(?P<yy>[0-9]{2})"),
    ("MM", r"(?P<month>[0-9]{2})"),
    ("M", r"(?P<month>[0-9]{1,2})"),
    ("dd", r"(?P<day>[0-9]{2})"),
    ("d", r"(?P<day>[0-9]{1,2})"),
    ("HH", r"(?:[01][0-9]|2[0-3])"),
    ("mm", r"[0-5][0-9]"),
    ("ss", r"[0-5][0-9]"),
)


@functools.lru_cache(maxsize=32)
def compile_date_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a ``yyyy-MM-dd``-style pattern into a regex with date groups.

    Text in single quotes is taken literally (``''`` is a quote). Other ASCII
    letters outside the supported set, repeated fields and patterns without a
    year, month and day raise ``ValueError``.
    """

    out: list[str] = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "'":
            end = pattern.find("'", i + 1)
            if end == -1:
                raise ValueError(f"Unterminated quote in date format: {pattern!r}")
            out.append(re.escape(pattern[i + 1 : end] or "'"))
            i = end + 1
            continue
        for letters, fragment in _DATE_PATTERN_PARTS:
            if pattern.startswith(letters, i):
                out.append(fragment)
                i += len(letters)
                break
        else:
            if ch.isascii() and ch.isalpha():
                raise ValueError(f"Unsupported date format letter {ch!r} in {pattern!r}")
            out.append(re.escape(ch))
            i += 1

    try:
        compiled = re.compile("".join(out))
    except re.error as exc:
        raise ValueError(f"Repeated field in date format {pattern!r}") from exc
    groups = compiled.groupindex
    if not ({"year", "yy"} & groups.keys() and {"month", "day"} <= groups.keys()):
        raise ValueError(f"Date format {pattern!r} needs a year, a month and a day")
    return compiled


def convert_date(value: str, date_format: str) -> str:
    """Convert a CSV date in ``date_format`` to ledger form ``YYYY/MM/DD``."""

    m = compile_date_pattern(date_format).fullmatch(value.strip())
    if m is None:
        raise ValueError(f"Text {value!r} does not match the date format")
    fields = m.groupdict()
    year = int(fields["year"]) if fields.get("year") else 2000 + int(fields["yy"])
    return date(year, int(fields["month"]), int(fields["day"])).strftime("%Y/%m/%d")


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------


def _column(cols: Sequence[str], index: int, row: int) -> str:
    if index >= len(cols):
        raise CsvEntryError(
            f"CSV row {row}: Column index out of bounds (index {index}). "
            f"Row has {len(cols)} column(s)",
            kind="column-out-of-bounds",
            row=row,
            column_count=len(cols),
        )
    return cols[index]


def parse_csv_entry(row: int, options: ConvertOptions, cols: Sequence[str]) -> Transaction:
    """Convert one CSV row to a :class:`Transaction`.

    Raises :class:`CsvEntryError` with the row number and the offending value.
    """

    date_raw = _column(cols, options.date_col, row)
    amount_raw = _column(cols, options.amount_col, row)
    ref = unquote_string(_column(cols, options.ref_col, row)) if options.ref_col >= 0 else None

    try:
        descr = unquote_string(get_col(cols, options.descr_col))
    except IndexError as exc:
        raise CsvEntryError(
            f"CSV row {row}: Column index out of bounds in descriptor spec "
            f"{options.descr_col!r}. Row has {len(cols)} column(s)",
            kind="column-out-of-bounds",
            row=row,
            column_count=len(cols),
        ) from exc

    try:
        txn_date = convert_date(date_raw, options.date_format)
    except ValueError as exc:
        raise CsvEntryError(
            f"CSV row {row}: Failed to parse date '{date_raw}' "
            f"with format '{options.date_format}': {exc}",
            kind="date-parse-error",
            row=row,
            value=date_raw,
        ) from exc

    try:
        amount = convert_amount(
            amount_raw,
            options.amount_decimal_separator,
            options.amount_grouping_separator,
        )
    except ValueError as exc:
        raise CsvEntryError(
            f"CSV row {row}: Failed to parse amount '{amount_raw}': {exc}",
            kind="amount-parse-error",
            row=row,
            value=amount_raw,
        ) from exc

    return Transaction(date=txn_date, amount=amount, descr=descr, ref=ref)


def drop_lines(rows: Sequence[list[str]], header: int, trailer: int) -> list[list[str]]:
    """Drop ``header`` leading and ``trailer`` trailing rows."""

    kept = list(rows[header:])
    return kept[: len(kept) - trailer] if trailer else kept


def parse_csv(stream: TextIO, options: ConvertOptions) -> Iterator[Transaction]:
    """Read bank transactions from ``stream`` according to ``options``."""

    reader = csv.reader(stream, delimiter=options.csv_field_separator)
    rows = drop_lines(
        list(reader),
        options.csv_skip_header_lines,
        options.csv_skip_trailer_lines,
    )
    for pos, cols in enumerate(rows):
        row = options.csv_skip_header_lines + pos + 1
        if not any(c.strip() for c in cols):
            _logger.debug("skipping blank CSV row %d", row)
            continue
        yield parse_csv_entry(row, options, cols)


__all__ = [
    "CsvEntryError",
    "all_indices",
    "clip_string",
    "compile_date_pattern",
    "convert_amount",
    "convert_date",
    "drop_lines",
    "format_colspec",
    "format_value",
    "get_col",
    "parse_csv",
    "parse_csv_entry",
    "split_by_indices",
    "unquote_string",
    "valid_descr_col_spec",
]
