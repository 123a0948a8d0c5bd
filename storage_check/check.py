"""End-to-end comparison of two snapshots, without any side effect."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from .diff import Difference, diff_layouts
from .errors import UnparsableSource
from .format import FormattedDifference, format_difference
from .layout import RawSnapshot, parse_layout
from .model import StorageLayout
from .policy import Policy, fail_on_errors
from .source import DeclarationIndex, index_source

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckResult:
    before: StorageLayout
    after: StorageLayout
    differences: List[Difference]
    formatted: List[FormattedDifference]
    index: DeclarationIndex
    source_error: Optional[UnparsableSource] = None

    def failed(self, policy: Policy = fail_on_errors) -> bool:
        return policy(self.formatted)


def _index(source_text: Optional[str], source_path: str):
    if source_text is None:
        return DeclarationIndex(path=source_path, warnings=("no source provided",)), None
    try:
        return index_source(source_text, source_path), None
    except UnparsableSource as exc:
        logger.warning("%s; differences will point at the whole file", exc)
        return DeclarationIndex(path=source_path, warnings=(str(exc),)), exc


def compare_layouts(before: StorageLayout, after: StorageLayout,
                    source_text: Optional[str] = None,
                    source_path: str = "") -> CheckResult:
    """Diff two parsed layouts and attribute every difference to `source_text`.

    A source that cannot be indexed does not stop the comparison: every
    difference is then located at the whole file.
    """
    differences = diff_layouts(before, after)
    index, source_error = _index(source_text, source_path)
    formatted = [format_difference(d, index) for d in differences]
    return CheckResult(before, after, differences, formatted, index, source_error)


def check_layouts(before_raw: RawSnapshot, after_raw: RawSnapshot,
                  source_text: Optional[str] = None, source_path: str = "",
                  contract: Optional[str] = None) -> CheckResult:
    """
    Parse both snapshots and compare them.

    `contract` names the inspected contract and takes precedence over the
    name a snapshot carries.
    """
    before = parse_layout(before_raw, contract)
    after = parse_layout(after_raw, contract)
    return compare_layouts(before, after, source_text, source_path)
