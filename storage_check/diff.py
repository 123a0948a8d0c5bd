"""
storage_check.diff
~~~~~~~~~~~~~~~~~~

Align two storage layouts of the same contract and classify every change.

Variables are matched by label within their declaring contract, so private
variables of different base contracts sharing a name stay apart. When a
snapshot does not say which contract declares its variables, the n-th
occurrence of a label on one side is matched with the n-th on the other.
A position shift is a change of the first byte a variable occupies, so
appending new variables never moves the existing ones.
"""

from __future__ import annotations

import enum
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from .errors import LayoutMismatch
from .model import StorageLayout, StorageVariable
from .solidity_types import is_storage_compatible

logger = logging.getLogger(__name__)


class DiffKind(str, enum.Enum):
    ADDED = "ADDED"
    REMOVED = "REMOVED"
    UNSAFE_TYPE_CHANGE = "UNSAFE_TYPE_CHANGE"
    TYPE_CHANGE_WARNING = "TYPE_CHANGE_WARNING"
    POSITION_SHIFT = "POSITION_SHIFT"


class Severity(str, enum.Enum):
    ERROR = "error"
    WARNING = "warning"


DIFF_LEVELS: Dict[DiffKind, Severity] = {
    DiffKind.UNSAFE_TYPE_CHANGE: Severity.ERROR,
    DiffKind.POSITION_SHIFT: Severity.ERROR,
    DiffKind.REMOVED: Severity.ERROR,
    DiffKind.ADDED: Severity.WARNING,
    DiffKind.TYPE_CHANGE_WARNING: Severity.WARNING,
}


@dataclass(frozen=True)
class Difference:
    kind: DiffKind
    before: Optional[StorageVariable] = None
    after: Optional[StorageVariable] = None

    @property
    def label(self) -> str:
        var = self.after or self.before
        return var.label if var else ""

    @property
    def severity(self) -> Severity:
        return DIFF_LEVELS[self.kind]


_Key = Tuple[Optional[str], str, int]


def _declaring(var: StorageVariable) -> Optional[str]:
    # `src/Base.sol:Base` -> `Base`; file moves keep the key
    if not var.contract:
        return None
    return var.contract.rsplit(":", 1)[-1]


def _keyed(layout: StorageLayout, by_contract: bool) -> Iterator[Tuple[_Key, StorageVariable]]:
    seen: Counter = Counter()
    for var in layout:
        owner = _declaring(var) if by_contract else None
        yield (owner, var.label, seen[owner, var.label]), var
        seen[owner, var.label] += 1


def _compare(old: StorageVariable, new: StorageVariable) -> List[Difference]:
    found: List[Difference] = []

    if old.type_id != new.type_id or old.size_bytes != new.size_bytes:
        compatible = is_storage_compatible(old.type_id, new.type_id,
                                           old.size_bytes, new.size_bytes)
        # same spelling but another footprint means the struct/array behind it changed
        if old.type_id == new.type_id or not compatible:
            kind = DiffKind.UNSAFE_TYPE_CHANGE
        else:
            kind = DiffKind.TYPE_CHANGE_WARNING
        found.append(Difference(kind, old, new))

    if old.start != new.start:
        found.append(Difference(DiffKind.POSITION_SHIFT, old, new))

    return found


def diff_layouts(before: StorageLayout, after: StorageLayout) -> List[Difference]:
    """
    Return the differences between `before` and `after`.

    Matched and added variables come first, in the declaration order of
    `after`; removed variables follow in the declaration order of `before`.

    Raises
    ------
    LayoutMismatch
        If both layouts name their contract and the names differ.
    """
    if before.contract and after.contract and before.contract != after.contract:
        raise LayoutMismatch(before.contract, after.contract)

    # declaring contracts are only comparable when every variable names one
    by_contract = all(v.contract for v in before) and all(v.contract for v in after)
    old_by_key = dict(_keyed(before, by_contract))
    matched = set()
    differences: List[Difference] = []

    for key, new in _keyed(after, by_contract):
        old = old_by_key.get(key)
        if old is None:
            differences.append(Difference(DiffKind.ADDED, after=new))
            continue
        matched.add(key)
        differences.extend(_compare(old, new))

    for key, old in _keyed(before, by_contract):
        if key not in matched:
            differences.append(Difference(DiffKind.REMOVED, before=old))

    logger.debug("%s: %d difference(s) across %d -> %d variables",
                 after.contract or before.contract or "<unnamed>",
                 len(differences), len(before), len(after))
    return differences
