# ruff: noqa: I001
"""CLI for the ``banks2ledger`` package.

A Typer application with a single ``convert`` command. The root callback loads
a local ``.env`` (``python-dotenv``, never overriding the environment) and
configures logging; option validation is delegated to
:class:`banks2ledger.models.ConvertOptions` and the conversion itself to
:func:`banks2ledger.api.convert`.

Ledger text goes to stdout; errors go to stderr with a non-zero exit status.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from pydantic import ValidationError

from .logging_setup import configure_logging, get_logger
from .models import ConvertOptions

_logger = get_logger("banks2ledger.cli")


# ---- Small module-level helpers used by the command ---------------------------


def _resolve_workers(workers: int | None) -> int:
    """Resolve the classification worker count.

    An explicit option wins; otherwise ``BANKS2LEDGER_MAX_WORKERS`` is honored
    when it holds a positive integer. The default is a single worker.
    """

    if workers is not None:
        return workers
    env_val = os.getenv("BANKS2LEDGER_MAX_WORKERS")
    try:
        env_workers = int(env_val) if env_val else None
    except ValueError:
        _logger.warning("ignoring invalid BANKS2LEDGER_MAX_WORKERS=%r", env_val)
        env_workers = None
    if env_workers is not None and env_workers > 0:
        return min(env_workers, 32)
    return 1


def _option_name(field: str) -> str:
    return "--" + field.replace("_", "-")


def format_validation_errors(exc: ValidationError) -> list[str]:
    """Turn a ``ConvertOptions`` validation error into one line per problem."""

    lines: list[str] = []
    for err in exc.errors():
        loc = err.get("loc") or ("options",)
        msg = str(err.get("msg", "")).removeprefix("Value error, ")
        lines.append(f"{_option_name(str(loc[0]))}: {msg}")
    return lines


def error_msg(errors: list[str]) -> str:
    return "The following errors occurred while parsing your command:\n\n" + "\n".join(errors)


# ---- Typer-based console interface ---------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "A tool to convert bank account CSV files to ledger. "
        "Guesses account names via simple Bayesian inference based on your "
        "existing ledger file."
    ),
)


@app.command("convert")
def convert_cmd(
    ledger_file: Annotated[
        Path,
        typer.Option("--ledger-file", "-l", help="Ledger file to get accounts and probabilities"),
    ] = Path("ledger.dat"),
    csv_file: Annotated[
        Path, typer.Option("--csv-file", "-f", help="Input transactions in CSV format")
    ] = Path("transactions.csv"),
    csv_file_encoding: Annotated[
        str, typer.Option("--csv-file-encoding", "-e", help="Encoding of the CSV file")
    ] = "UTF-8",
    account: Annotated[
        str, typer.Option("--account", "-a", help="Originating account of transactions")
    ] = "Assets:Checking",
    csv_field_separator: Annotated[
        str, typer.Option("--csv-field-separator", "-j", help="CSV field separator")
    ] = ",",
    csv_skip_header_lines: Annotated[
        int, typer.Option("--csv-skip-header-lines", "-b", help="CSV header lines to skip")
    ] = 0,
    csv_skip_trailer_lines: Annotated[
        int, typer.Option("--csv-skip-trailer-lines", "-z", help="CSV trailer lines to skip")
    ] = 0,
    currency: Annotated[str, typer.Option("--currency", "-c", help="Currency")] = "SEK",
    date_format: Annotated[
        str, typer.Option("--date-format", "-D", help="Format of date field in CSV file")
    ] = "yyyy-MM-dd",
    date_col: Annotated[
        int, typer.Option("--date-col", "-d", help="Date column index (zero-based)")
    ] = 0,
    ref_col: Annotated[
        int,
        typer.Option(
            "--ref-col", "-r", help="Payment reference column index (zero-based, -1 for none)"
        ),
    ] = -1,
    amount_col: Annotated[
        int, typer.Option("--amount-col", "-m", help="Amount column index (zero-based)")
    ] = 2,
    descr_col: Annotated[
        str,
        typer.Option(
            "--descr-col", "-t", help="Text (descriptor) column index specs (zero-based)"
        ),
    ] = "%3",
    amount_decimal_separator: Annotated[
        str, typer.Option("--amount-decimal-separator", "-x", help="Decimal sign character")
    ] = ".",
    amount_grouping_separator: Annotated[
        str,
        typer.Option(
            "--amount-grouping-separator",
            "-y",
            help="Decimal group (thousands) separator character",
        ),
    ] = ",",
    hooks_file: Annotated[
        Path | None,
        typer.Option("--hooks-file", "-k", help="Hooks file defining customized output entries"),
    ] = None,
    debug: Annotated[
        str,
        typer.Option(
            "--debug", "-g", help="Include debug information in the generated output (true/false)"
        ),
    ] = "false",
    workers: Annotated[
        int | None,
        typer.Option(
            "--workers",
            "-w",
            help="Parallel classification workers (falls back to BANKS2LEDGER_MAX_WORKERS).",
        ),
    ] = None,
) -> None:
    """Convert CSV bank transactions to ledger entries on stdout."""

    # Deferred imports keep `--help` fast
    from .api import convert
    from .csv_parser import CsvEntryError
    from .ledger_parser import LedgerFileError
    from .sandbox import HooksLoadError

    try:
        options = ConvertOptions(
            ledger_file=ledger_file,
            csv_file=csv_file,
            csv_file_encoding=csv_file_encoding,
            account=account,
            csv_field_separator=csv_field_separator,
            csv_skip_header_lines=csv_skip_header_lines,
            csv_skip_trailer_lines=csv_skip_trailer_lines,
            currency=currency,
            date_format=date_format,
            date_col=date_col,
            ref_col=ref_col,
            amount_col=amount_col,
            descr_col=descr_col,
            amount_decimal_separator=amount_decimal_separator,
            amount_grouping_separator=amount_grouping_separator,
            hooks_file=hooks_file,
            debug=debug,
            workers=_resolve_workers(workers),
        )
    except ValidationError as e:
        print(error_msg(format_validation_errors(e)), file=sys.stderr)
        raise typer.Exit(1) from None

    try:
        count = convert(options, out=sys.stdout)
    except (LedgerFileError, CsvEntryError, HooksLoadError) as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(1) from None
    except UnicodeDecodeError as e:
        print(
            f"Error: Failed to decode '{options.csv_file}' as {options.csv_file_encoding}: {e}",
            file=sys.stderr,
        )
        raise typer.Exit(1) from None
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(1) from None

    _logger.info("converted %d transaction(s)", count)


@app.callback()
def _root(
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level", help="Diagnostics level on stderr (falls back to BANKS2LEDGER_LOG_LEVEL)."
        ),
    ] = None,
) -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


if __name__ == "__main__":  # pragma: no cover
    app()
