"""Public interface for the ``banks2ledger`` package.

Re-exports the classification engine, the conversion entry point and the
record types. There is no runtime logic here, only symbol re-exports.
"""

from .api import convert, generate_ledger_entry
from .bayesian import (
    bayes_combine,
    best_accounts,
    build_model,
    combined_table,
    decide_account,
    p_belong,
)
from .hooks import EntryHook, HookRegistry, add_entry_hook
from .ledger_parser import parse_ledger, print_ledger_entry
from .models import (
    UNKNOWN_ACCOUNT,
    CandidateScore,
    ConvertOptions,
    FrequencyModel,
    HistoricalEntry,
    LedgerEntry,
    Transaction,
    Verification,
)
from .tokens import tokenize

__all__ = [
    # API
    "convert",
    "generate_ledger_entry",
    "parse_ledger",
    "print_ledger_entry",
    # Classification engine
    "tokenize",
    "build_model",
    "p_belong",
    "bayes_combine",
    "best_accounts",
    "combined_table",
    "decide_account",
    # Hooks
    "EntryHook",
    "HookRegistry",
    "add_entry_hook",
    # Models / types
    "UNKNOWN_ACCOUNT",
    "CandidateScore",
    "ConvertOptions",
    "FrequencyModel",
    "HistoricalEntry",
    "LedgerEntry",
    "Transaction",
    "Verification",
]
