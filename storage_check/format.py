"""
storage_check.format
~~~~~~~~~~~~~~~~~~~~

Attach a source location and a human-readable message to each difference,
and render the result for a terminal or for GitHub workflow annotations.
Nothing here prints; callers decide where the text goes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from colorama import Fore, Style

from .diff import DIFF_LEVELS, DiffKind, Difference, Severity
from .errors import UnresolvedLocation
from .model import StorageVariable
from .source import Declaration, DeclarationIndex

logger = logging.getLogger(__name__)

_TITLES = {
    DiffKind.ADDED: "Storage variable added",
    DiffKind.REMOVED: "Storage variable removed",
    DiffKind.UNSAFE_TYPE_CHANGE: "Unsafe storage type change",
    DiffKind.TYPE_CHANGE_WARNING: "Storage type changed",
    DiffKind.POSITION_SHIFT: "Storage variable moved",
}
_COLOURS = {
    DiffKind.ADDED: (Fore.GREEN, "+"),
    DiffKind.REMOVED: (Fore.RED, "−"),
    DiffKind.UNSAFE_TYPE_CHANGE: (Fore.RED, "✗"),
    DiffKind.TYPE_CHANGE_WARNING: (Fore.YELLOW, "~"),
    DiffKind.POSITION_SHIFT: (Fore.YELLOW, "↷"),
}


@dataclass(frozen=True)
class FormattedDifference:
    kind: DiffKind
    severity: Severity
    message: str
    location: Declaration
    difference: Difference
    unresolved: Optional[UnresolvedLocation] = None

    @property
    def label(self) -> str:
        return self.difference.label


# ──────────────────────────────────────────────
# Messages
# ──────────────────────────────────────────────
def _at(var: StorageVariable) -> str:
    return f"slot {var.slot}, offset {var.offset}"


def describe(diff: Difference) -> str:
    before, after = diff.before, diff.after
    if diff.kind is DiffKind.ADDED:
        return f'variable "{after.label}" of type "{after.type_id}" was added at {_at(after)}'
    if diff.kind is DiffKind.REMOVED:
        return (f'variable "{before.label}" of type "{before.type_id}" was removed from '
                f'{_at(before)}; the bytes it held are still in storage')
    if diff.kind is DiffKind.UNSAFE_TYPE_CHANGE:
        return (f'variable "{after.label}" changed type from "{before.type_id}" '
                f'({before.size_bytes} bytes) to "{after.type_id}" ({after.size_bytes} bytes); '
                f'existing values would be reinterpreted')
    if diff.kind is DiffKind.TYPE_CHANGE_WARNING:
        return (f'variable "{after.label}" changed type from "{before.type_id}" to '
                f'"{after.type_id}"; both share the same storage representation')
    return (f'variable "{after.label}" moved from {_at(before)} to {_at(after)}; '
            f'it would read the bytes previously stored there')


# ──────────────────────────────────────────────
# Locations
# ──────────────────────────────────────────────
def resolve_location(diff: Difference, index: DeclarationIndex) -> Declaration:
    """
    Declaration of the variable behind `diff`.

    The candidate ("after") variable is looked up first, then the reference
    one, each inside its owning contract before falling back to the bare label.

    Raises
    ------
    UnresolvedLocation
        When no declaration matches, e.g. inherited or removed variables.
    """
    for var in (diff.after, diff.before):
        if var is None:
            continue
        found = index.lookup(var.label, var.contract)
        if found is not None:
            return found
    raise UnresolvedLocation(diff.label, index.path)


def format_difference(diff: Difference, index: DeclarationIndex) -> FormattedDifference:
    """Join `diff` with its location; unknown labels degrade to the whole file."""
    unresolved = None
    try:
        location = resolve_location(diff, index)
    except UnresolvedLocation as exc:
        logger.info("%s; annotating the whole file", exc)
        unresolved = exc
        location = index.file_location()

    return FormattedDifference(
        kind=diff.kind,
        severity=DIFF_LEVELS[diff.kind],
        message=describe(diff),
        location=location,
        difference=diff,
        unresolved=unresolved,
    )


# ──────────────────────────────────────────────
# Rendering
# ──────────────────────────────────────────────
def _escape_data(s: str) -> str:
    return s.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def _escape_property(s: str) -> str:
    return _escape_data(s).replace(":", "%3A").replace(",", "%2C")


def format_github(formatted: FormattedDifference) -> str:
    """Render as a GitHub Actions workflow command (``::error file=...::msg``)."""
    rng = formatted.location.range
    props = [("file", formatted.location.source_path), ("line", rng.start_line)]
    if formatted.unresolved is None:
        props += [("col", rng.start_column), ("endLine", rng.end_line),
                  ("endColumn", rng.end_column)]
    else:
        props.append(("endLine", rng.end_line))
    props.append(("title", _TITLES[formatted.kind]))
    body = ",".join(f"{k}={_escape_property(str(v))}" for k, v in props)
    return f"::{formatted.severity.value} {body}::{_escape_data(formatted.message)}"


def format_console(formatted: FormattedDifference) -> str:
    """Render as one colour-coded terminal line."""
    colour, marker = _COLOURS[formatted.kind]
    loc = formatted.location
    where = loc.source_path or "<source>"
    if formatted.unresolved is None:
        where = f"{where}:{loc.range.start_line}:{loc.range.start_column}"
    return f"{colour}{marker} {formatted.message}{Style.RESET_ALL}  ({where})"


def _variable_record(var: Optional[StorageVariable]) -> Optional[Dict[str, Any]]:
    if var is None:
        return None
    return {
        "label": var.label,
        "type": var.type_id,
        "slot": var.slot,
        "offset": var.offset,
        "bytes": var.size_bytes,
        "contract": var.contract,
    }


def to_record(formatted: FormattedDifference) -> Dict[str, Any]:
    """Plain JSON-serializable record of one formatted difference."""
    rng = formatted.location.range
    return {
        "kind": formatted.kind.value,
        "severity": formatted.severity.value,
        "label": formatted.label,
        "before": _variable_record(formatted.difference.before),
        "after": _variable_record(formatted.difference.after),
        "location": {
            "path": formatted.location.source_path,
            "startLine": rng.start_line,
            "startColumn": rng.start_column,
            "endLine": rng.end_line,
            "endColumn": rng.end_column,
        },
        "message": formatted.message,
    }
