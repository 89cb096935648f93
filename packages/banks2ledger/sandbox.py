"""Restricted evaluation of user hooks files.

A hooks file is Python source that registers :class:`~banks2ledger.hooks.EntryHook`
objects. It is compiled with RestrictedPython and runs against an explicit
namespace that exposes only the helpers listed in :data:`EXPOSED_NAMES`, the
RestrictedPython safe builtins and a few side-effect free extras. Attribute,
item and iteration access goes through RestrictedPython guards; names and
attributes starting with ``_`` and frame, code and traceback introspection
attributes (``gi_frame``, ``f_globals``, ``tb_frame``...) are rejected at
compile time. ``import`` statements are rejected before compiling.

Example hooks file::

    def is_salary(entry):
        return "LÖN" in tokenize(entry.descr)

    def salary(entry, out):
        verifs = (
            Verification(comment="Salary"),
            Verification(account=entry.account, amount=entry.amount, currency=entry.currency),
            Verification(account="Income:Salary"),
        )
        print_ledger_entry(replace(entry, verifs=verifs), out)

    add_entry_hook(EntryHook(predicate=is_salary, formatter=salary))
"""

from __future__ import annotations

import ast
import builtins
import dataclasses
import operator
import re
import traceback
from os import PathLike
from pathlib import Path
from typing import Any

from RestrictedPython import compile_restricted_exec, limited_builtins, safe_builtins
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)
from RestrictedPython.PrintCollector import PrintCollector

from .csv_parser import format_value
from .hooks import EntryHook, HookRegistry, default_registry
from .ledger_parser import add_default_verifications, print_ledger_entry
from .logging_setup import get_logger
from .models import Verification
from .tokens import tokenize

_logger = get_logger("banks2ledger.sandbox")

# On top of RestrictedPython's safe and limited builtins.
_EXTRA_BUILTINS = (
    "all",
    "any",
    "dict",
    "enumerate",
    "filter",
    "list",
    "map",
    "max",
    "min",
    "reversed",
    "set",
    "sum",
)

_INPLACE_OPS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
}

_RESTRICTION_RE = re.compile(r"Line (\d+): (.*)", re.DOTALL)

EXPOSED_NAMES = (
    "add_entry_hook",
    "EntryHook",
    "Verification",
    "replace",
    "tokenize",
    "print_ledger_entry",
    "add_default_verifications",
    "format_value",
)


class HooksLoadError(RuntimeError):
    """A hooks file could not be loaded.

    ``kind`` is ``"hooks-file-not-found"`` or ``"hooks-load-error"``.
    """

    def __init__(
        self, message: str, *, kind: str, file: str, line: int | None = None
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.file = file
        self.line = line


def _inplacevar(op: str, x: Any, y: Any) -> Any:
    try:
        fn = _INPLACE_OPS[op]
    except KeyError:
        raise TypeError(f"operator {op} is not allowed in hooks files") from None
    return fn(x, y)


def _apply(fn: Any, *args: Any, **kwargs: Any) -> Any:
    return fn(*args, **kwargs)


def _restricted_builtins() -> dict[str, Any]:
    return {
        **safe_builtins,
        **limited_builtins,
        **{name: getattr(builtins, name) for name in _EXTRA_BUILTINS},
    }


def _make_namespace(registry: HookRegistry) -> dict[str, Any]:
    exposed: dict[str, Any] = {
        "add_entry_hook": registry.add_entry_hook,
        "EntryHook": EntryHook,
        "Verification": Verification,
        "replace": dataclasses.replace,
        "tokenize": tokenize,
        "print_ledger_entry": print_ledger_entry,
        "add_default_verifications": add_default_verifications,
        "format_value": format_value,
    }
    guards: dict[str, Any] = {
        "_getattr_": safer_getattr,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": _inplacevar,
        "_apply_": _apply,
        "_print_": PrintCollector,
    }
    return {
        "__builtins__": _restricted_builtins(),
        "__name__": "banks2ledger_hooks",
        **guards,
        **exposed,
    }


def _check_imports(tree: ast.AST) -> int | None:
    """Line of the first ``import`` statement, if any."""

    for node in ast.walk(tree):
        if isinstance(node, ast.Import | ast.ImportFrom):
            return node.lineno
    return None


def _split_restriction(error: str) -> tuple[int | None, str]:
    # RestrictedPython reports "Line <n>: <reason>".
    m = _RESTRICTION_RE.fullmatch(error)
    if m is None:
        return None, error
    return int(m.group(1)), m.group(2)


def _error_line(exc: BaseException, filename: str) -> int | None:
    frames = [f for f in traceback.extract_tb(exc.__traceback__) if f.filename == filename]
    return frames[-1].lineno if frames else None


def _load_error(filename: str, line: int | None, reason: object) -> HooksLoadError:
    loc = f" at line {line}" if line is not None else ""
    return HooksLoadError(
        f"Error in hooks file '{filename}'{loc}: {reason}",
        kind="hooks-load-error",
        file=filename,
        line=line,
    )


def load_hooks_file(
    hooks_file: str | PathLike[str], registry: HookRegistry | None = None
) -> HookRegistry:
    """Evaluate ``hooks_file`` and register its hooks on ``registry``.

    ``registry`` defaults to :func:`banks2ledger.hooks.default_registry`.
    Raises :class:`HooksLoadError` with a message naming the file and, where
    known, the line of the problem.
    """

    registry = registry if registry is not None else default_registry()
    path = Path(hooks_file)
    filename = str(path)

    try:
        code = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise HooksLoadError(
            f"Failed to load hooks file: {exc}", kind="hooks-file-not-found", file=filename
        ) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise HooksLoadError(
            f"Error loading hooks file '{filename}': {exc}",
            kind="hooks-load-error",
            file=filename,
        ) from exc

    try:
        tree = ast.parse(code, filename=filename)
    except SyntaxError as exc:
        raise HooksLoadError(
            f"Syntax error in hooks file '{filename}' at line {exc.lineno}, "
            f"column {exc.offset}: {exc.msg}",
            kind="hooks-load-error",
            file=filename,
            line=exc.lineno,
        ) from exc

    import_line = _check_imports(tree)
    if import_line is not None:
        raise _load_error(filename, import_line, "import statements are not allowed")

    compiled = compile_restricted_exec(code, filename=filename)
    if compiled.errors:
        line, reason = _split_restriction(compiled.errors[0])
        raise _load_error(filename, line, reason)
    for warning in compiled.warnings:
        _logger.debug("hooks file %s: %s", filename, warning)

    before = len(registry)
    try:
        exec(compiled.code, _make_namespace(registry))  # noqa: S102
    except Exception as exc:
        raise _load_error(filename, _error_line(exc, filename), exc) from exc

    _logger.info("loaded %d hook(s) from %s", len(registry) - before, filename)
    return registry


__all__ = ["EXPOSED_NAMES", "HooksLoadError", "load_hooks_file"]
