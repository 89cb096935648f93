"""Conversion orchestration: ledger history + bank CSV → ledger entries.

The frequency model is built from the whole ledger file before any transaction
is classified. Classification only reads the model, so with ``workers > 1``
decisions run concurrently (each with its own trace buffer); entries are then
assembled, passed through the hooks and written in input order on the calling
thread.
"""

from __future__ import annotations

import io
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import IO

from .bayesian import decide_account
from .csv_parser import parse_csv
from .hooks import HookRegistry, default_registry
from .ledger_parser import dump_acc_maps, parse_ledger
from .logging_setup import get_logger
from .models import ConvertOptions, FrequencyModel, LedgerEntry, Transaction
from .pmap import p_map
from .sandbox import load_hooks_file

_logger = get_logger("banks2ledger.api")

ACC_MAPS_DUMP_FILE = "acc_maps_dump.txt"


def assemble_entry(options: ConvertOptions, txn: Transaction, counter_account: str) -> LedgerEntry:
    """Combine a transaction with its decided counter-account."""

    return LedgerEntry(
        date=txn.date,
        descr=txn.descr,
        amount=txn.amount,
        currency=options.currency,
        account=options.account,
        counter_account=counter_account,
        ref=txn.ref,
    )


def decide_transaction(
    options: ConvertOptions, model: FrequencyModel, txn: Transaction
) -> tuple[str, str]:
    """Decide ``txn``'s counter-account; returns ``(counter_account, trace_text)``.

    ``trace_text`` is empty unless ``options.debug`` is set.
    """

    buf = io.StringIO()
    counter = decide_account(model, txn.descr, options.account, debug=options.debug, trace=buf)
    return counter, buf.getvalue()


def emit_entry(
    options: ConvertOptions,
    txn: Transaction,
    counter_account: str,
    *,
    trace_text: str = "",
    registry: HookRegistry | None = None,
    out: IO[str] | None = None,
) -> LedgerEntry:
    """Write the decision trace, then pass the assembled entry through the hooks."""

    out = out or sys.stdout
    if trace_text:
        out.write(trace_text)
    entry = assemble_entry(options, txn, counter_account)
    (registry if registry is not None else default_registry()).process_hooks(entry, out)
    return entry


def generate_ledger_entry(
    options: ConvertOptions,
    model: FrequencyModel,
    txn: Transaction,
    *,
    registry: HookRegistry | None = None,
    out: IO[str] | None = None,
) -> LedgerEntry:
    """Decide, assemble and emit a single entry through the hooks."""

    counter, trace_text = decide_transaction(options, model, txn)
    return emit_entry(options, txn, counter, trace_text=trace_text, registry=registry, out=out)


def classify_transactions(
    options: ConvertOptions,
    model: FrequencyModel,
    transactions: Sequence[Transaction],
) -> list[tuple[str, str]]:
    """Run :func:`decide_transaction` over ``transactions``, results in input order."""

    workers = max(1, min(options.workers, len(transactions)))
    return p_map(
        transactions, lambda txn: decide_transaction(options, model, txn), concurrency=workers
    )


def convert(
    options: ConvertOptions,
    *,
    out: IO[str] | None = None,
    registry: HookRegistry | None = None,
    dump_dir: str | Path | None = None,
) -> int:
    """Run a full conversion and return the number of entries handled.

    ``out`` receives the ledger text (``sys.stdout`` by default). In debug mode
    the model is also dumped to ``acc_maps_dump.txt`` in ``dump_dir`` (the
    current directory by default).
    """

    out = out or sys.stdout
    registry = registry if registry is not None else default_registry()

    model = parse_ledger(options.ledger_file)

    if options.debug:
        dump_path = Path(dump_dir or ".") / ACC_MAPS_DUMP_FILE
        with dump_path.open("w", encoding="utf-8") as f:
            dump_acc_maps(model, f)
        _logger.info("frequency model dumped to %s", dump_path)

    if options.hooks_file is not None:
        load_hooks_file(options.hooks_file, registry)

    with open(options.csv_file, encoding=options.csv_file_encoding, newline="") as f:
        transactions = list(parse_csv(f, options))
    _logger.info("read %d transaction(s) from %s", len(transactions), options.csv_file)

    decisions = classify_transactions(options, model, transactions)

    for txn, (counter, trace_text) in zip(transactions, decisions, strict=True):
        emit_entry(options, txn, counter, trace_text=trace_text, registry=registry, out=out)

    out.flush()
    return len(transactions)


__all__ = [
    "ACC_MAPS_DUMP_FILE",
    "assemble_entry",
    "classify_transactions",
    "convert",
    "decide_transaction",
    "emit_entry",
    "generate_ledger_entry",
]
