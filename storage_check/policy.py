"""Pass/fail policies over a run's formatted differences.

A policy is any callable taking the sequence of `FormattedDifference`s and
returning True when the run must fail.
"""

from __future__ import annotations

from typing import Callable, Dict, Sequence

from .diff import DiffKind, Severity
from .format import FormattedDifference

Policy = Callable[[Sequence[FormattedDifference]], bool]


def fail_on_errors(formatted: Sequence[FormattedDifference]) -> bool:
    return any(f.severity is Severity.ERROR for f in formatted)


def fail_on_removed(formatted: Sequence[FormattedDifference]) -> bool:
    return any(f.kind is DiffKind.REMOVED for f in formatted)


def fail_on_changes(formatted: Sequence[FormattedDifference]) -> bool:
    return bool(formatted)


def never_fail(formatted: Sequence[FormattedDifference]) -> bool:
    return False


def fail_on_any(*policies: Policy) -> Policy:
    """Fail when at least one of `policies` fails."""
    def policy(formatted: Sequence[FormattedDifference]) -> bool:
        return any(p(formatted) for p in policies)
    return policy


POLICIES: Dict[str, Policy] = {
    "errors": fail_on_errors,
    "removed": fail_on_removed,
    "changes": fail_on_changes,
    "never": never_fail,
}
