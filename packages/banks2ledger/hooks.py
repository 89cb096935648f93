"""Entry hooks: user-defined output for selected ledger entries.

A hook pairs a *predicate* with a *formatter*. Every assembled entry is offered
to the registered hooks in registration order; the first hook whose predicate
accepts the entry formats it (a hook without formatter drops the entry). When
no hook matches, the entry gets the default two postings and is printed.
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import IO

from .ledger_parser import add_default_verifications, print_ledger_entry
from .logging_setup import get_logger
from .models import LedgerEntry

_logger = get_logger("banks2ledger.hooks")

type Predicate = Callable[[LedgerEntry], bool]
type Formatter = Callable[[LedgerEntry, IO[str]], None]


@dataclass(frozen=True, slots=True)
class EntryHook:
    """A ``(predicate, formatter)`` pair.

    ``formatter`` receives the entry and the output stream; ``None`` means
    matching entries are swallowed.
    """

    predicate: Predicate
    formatter: Formatter | None = None


class HookRegistry:
    """Ordered, first-match collection of :class:`EntryHook` objects."""

    def __init__(self) -> None:
        self._hooks: list[EntryHook] = []

    def __len__(self) -> int:
        return len(self._hooks)

    def __iter__(self) -> Iterator[EntryHook]:
        return iter(self._hooks)

    def add_entry_hook(self, hook: EntryHook) -> None:
        if not isinstance(hook, EntryHook):
            raise TypeError(f"expected an EntryHook, got {type(hook).__name__}")
        if not callable(hook.predicate):
            raise TypeError("hook predicate must be callable")
        if hook.formatter is not None and not callable(hook.formatter):
            raise TypeError("hook formatter must be callable or None")
        self._hooks.append(hook)

    def clear(self) -> None:
        self._hooks.clear()

    def process_hooks(self, entry: LedgerEntry, out: IO[str] | None = None) -> None:
        """Format ``entry`` with the first matching hook, or the default layout."""

        out = out or sys.stdout
        for pos, hook in enumerate(self._hooks):
            if hook.predicate(entry):
                _logger.debug("entry %s %r handled by hook #%d", entry.date, entry.descr, pos)
                if hook.formatter is not None:
                    hook.formatter(entry, out)
                return
        print_ledger_entry(add_default_verifications(entry), out)


_DEFAULT_REGISTRY = HookRegistry()


def default_registry() -> HookRegistry:
    """The process-wide registry used by the module-level helpers."""

    return _DEFAULT_REGISTRY


def add_entry_hook(hook: EntryHook) -> None:
    _DEFAULT_REGISTRY.add_entry_hook(hook)


def process_hooks(entry: LedgerEntry, out: IO[str] | None = None) -> None:
    _DEFAULT_REGISTRY.process_hooks(entry, out)


__all__ = [
    "EntryHook",
    "Formatter",
    "HookRegistry",
    "Predicate",
    "add_entry_hook",
    "default_registry",
    "process_hooks",
]
