"""Account classification by Bayesian inference over descriptor tokens.

The ledger history is folded into a frequency model (account → token → count).
For a new descriptor every token yields a per-account *belonging probability*;
the per-token probabilities of an account are combined with the naive Bayes
rule ``Πp / (Πp + Π(1-p))`` and the accounts are ranked by the result.

All functions here are pure over an already built model. The only side effect
is the optional debug trace of :func:`decide_account`.
"""

from __future__ import annotations

import functools
import io
import itertools
import math
import sys
from collections import Counter, defaultdict
from collections.abc import Iterable, Iterator, Mapping, Sequence
from types import MappingProxyType
from typing import IO

from .logging_setup import get_logger
from .models import UNKNOWN_ACCOUNT, CandidateScore, FrequencyModel, HistoricalEntry, Token
from .tokens import tokenize

_logger = get_logger("banks2ledger.bayesian")


# ---------------------------------------------------------------------------
# Frequency model
# ---------------------------------------------------------------------------


def toktab_inc(model: FrequencyModel, cell: tuple[str, Token]) -> FrequencyModel:
    """Return a copy of ``model`` with the ``(account, token)`` counter bumped."""

    account, token = cell
    acc_table = dict(model.get(account, {}))
    acc_table[token] = acc_table.get(token, 0) + 1
    return {**model, account: acc_table}


def entry_cells(entry: HistoricalEntry) -> Iterator[tuple[str, Token]]:
    """The ``(account, token)`` cells one historical entry contributes."""

    return itertools.product(entry.accounts, entry.tokens)


def toktab_update(model: FrequencyModel, entry: HistoricalEntry) -> FrequencyModel:
    """Bump every account of ``entry`` for every token of ``entry``."""

    return functools.reduce(toktab_inc, entry_cells(entry), model)


def build_model(entries: Iterable[HistoricalEntry]) -> FrequencyModel:
    """Fold all historical entries into a read-only frequency model.

    Same counts as folding :func:`toktab_update` over ``entries``, but the
    cells are tallied in one private ``Counter`` per account instead of copying
    the model per cell. The returned mapping (and each per-account table) is a
    ``MappingProxyType`` view, so the model can be shared with concurrent
    readers once this function returns.
    """

    table: defaultdict[str, Counter[Token]] = defaultdict(Counter)
    n_entries = 0
    for n_entries, entry in enumerate(entries, start=1):
        for account, token in entry_cells(entry):
            table[account][token] += 1

    _logger.info("frequency model built: entries=%d accounts=%d", n_entries, len(table))
    return MappingProxyType({acc: MappingProxyType(dict(toks)) for acc, toks in table.items()})


# ---------------------------------------------------------------------------
# Probabilities
# ---------------------------------------------------------------------------


def n_occur(model: FrequencyModel, token: Token, account: str) -> int:
    """Occurrence count of ``token`` among the tokens recorded for ``account``."""

    return model.get(account, {}).get(token, 0)


def p_belong(model: FrequencyModel, token: Token, account: str) -> float:
    """Probability that a descriptor containing ``token`` belongs to ``account``.

    ``0.0`` when no account has ever seen the token.
    """

    n_all = sum(n_occur(model, token, acc) for acc in model)
    if n_all == 0:
        return 0.0
    return n_occur(model, token, account) / n_all


def bayes_combine(probs: Sequence[float]) -> float:
    """Combine independent probabilities with ``Πp / (Πp + Π(1-p))``.

    - ``[]`` → ``0.0``
    - ``[p]`` → ``p`` (returned as-is, no rounding through the formula)
    - a zero denominator, e.g. ``[0.0, 1.0]``, → ``0.0`` instead of NaN
    """

    if not probs:
        return 0.0
    if len(probs) == 1:
        return float(probs[0])

    prod_probs = math.prod(probs)
    prod_comps = math.prod(1.0 - p for p in probs)
    denominator = prod_probs + prod_comps
    if denominator == 0.0:
        return 0.0
    return prod_probs / denominator


def p_belong_combined(model: FrequencyModel, tokens: Sequence[Token], account: str) -> float:
    """Combined belonging probability of ``tokens`` for ``account``."""

    return bayes_combine([p_belong(model, tok, account) for tok in tokens])


def _ranked(scores: Iterable[CandidateScore]) -> list[CandidateScore]:
    # Stable: equal probabilities keep model order.
    return sorted(
        (s for s in scores if s.probability > 0.0),
        key=lambda s: s.probability,
        reverse=True,
    )


def best_accounts(model: FrequencyModel, token: Token) -> list[CandidateScore]:
    """Accounts with a nonzero ``p_belong`` for ``token``, most probable first."""

    return _ranked(CandidateScore(p_belong(model, token, acc), acc) for acc in model)


def combined_table(model: FrequencyModel, tokens: Sequence[Token]) -> list[CandidateScore]:
    """Rank all accounts by the combined probability of ``tokens``.

    Tokens unknown to every account carry no signal and are dropped before
    combining, so they cannot zero out an otherwise good match.
    """

    known = [tok for tok in tokens if best_accounts(model, tok)]
    return _ranked(CandidateScore(p_belong_combined(model, known, acc), acc) for acc in model)


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------


def _format_scores(scores: Iterable[CandidateScore]) -> str:
    return "".join(f";     {s.account:>40} {s.probability:f}\n" for s in scores)


def render_trace(
    model: FrequencyModel,
    descr: str | None,
    account: str,
    tokens: Sequence[Token],
    table: Sequence[CandidateScore],
) -> str:
    """Render the decision trace as ledger comment lines."""

    buf = io.StringIO()
    buf.write(f'; Deciding "{descr}" for {account}\n')
    buf.write(f"; Tokens: ({' '.join(tokens)})\n")
    buf.write("; Account probabilities per token:\n")
    for tok in tokens:
        buf.write(f";  '{tok}':\n")
        buf.write(_format_scores(best_accounts(model, tok)))
    buf.write("; Combined probability table:\n")
    buf.write(_format_scores(table))
    return buf.getvalue()


def account_for_descr(
    model: FrequencyModel,
    descr: str | None,
    account: str,
    *,
    debug: bool = False,
    trace: IO[str] | None = None,
) -> list[CandidateScore]:
    """Ranked counter-account candidates for ``descr`` captured on ``account``.

    Candidates whose name contains ``account`` are removed. With ``debug`` the
    full trace is written to ``trace`` (``sys.stdout`` by default) in a single
    write, so traces of concurrent decisions do not interleave.
    """

    tokens = tokenize(descr)
    table = combined_table(model, tokens)

    if debug:
        (trace or sys.stdout).write(render_trace(model, descr, account, tokens, table))

    return [c for c in table if account not in c.account]


def decide_account(
    model: FrequencyModel,
    descr: str | None,
    account: str,
    *,
    debug: bool = False,
    trace: IO[str] | None = None,
) -> str:
    """Decide the most likely counter-account of a transaction.

    Returns :data:`UNKNOWN_ACCOUNT` when there is no candidate or when the two
    best candidates have exactly the same probability.
    """

    candidates = account_for_descr(model, descr, account, debug=debug, trace=trace)

    if not candidates:
        decision = UNKNOWN_ACCOUNT
    elif len(candidates) > 1 and candidates[0].probability == candidates[1].probability:
        decision = UNKNOWN_ACCOUNT
    else:
        decision = candidates[0].account

    _logger.debug(
        "decide_account: descr=%r account=%s candidates=%d decision=%s",
        descr,
        account,
        len(candidates),
        decision,
    )
    return decision


__all__ = [
    "account_for_descr",
    "bayes_combine",
    "best_accounts",
    "build_model",
    "combined_table",
    "entry_cells",
    "decide_account",
    "n_occur",
    "p_belong",
    "p_belong_combined",
    "render_trace",
    "toktab_inc",
    "toktab_update",
]
