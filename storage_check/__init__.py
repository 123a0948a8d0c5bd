"""Storage layout upgrade-safety checks for Solidity contracts."""

from .check import CheckResult, check_layouts, compare_layouts
from .diff import DIFF_LEVELS, DiffKind, Difference, Severity, diff_layouts
from .errors import (
    ForgeError,
    LayoutMismatch,
    MalformedLayout,
    StorageCheckError,
    UnparsableSource,
    UnresolvedLocation,
)
from .format import FormattedDifference, format_difference, resolve_location
from .layout import parse_layout
from .model import StorageLayout, StorageVariable
from .policy import fail_on_any, fail_on_errors, fail_on_removed
from .report import DirectoryReportStore, MemoryReportStore, ReportStore, load_reference, report_key
from .solidity_types import canonical_type, is_storage_compatible
from .source import Declaration, DeclarationIndex, SourceRange, index_source, index_source_file

__version__ = "0.2.0"

__all__ = [
    "CheckResult",
    "check_layouts",
    "compare_layouts",
    "DIFF_LEVELS",
    "DiffKind",
    "Difference",
    "Severity",
    "diff_layouts",
    "ForgeError",
    "LayoutMismatch",
    "MalformedLayout",
    "StorageCheckError",
    "UnparsableSource",
    "UnresolvedLocation",
    "FormattedDifference",
    "format_difference",
    "resolve_location",
    "parse_layout",
    "StorageLayout",
    "StorageVariable",
    "fail_on_any",
    "fail_on_errors",
    "fail_on_removed",
    "DirectoryReportStore",
    "MemoryReportStore",
    "ReportStore",
    "load_reference",
    "report_key",
    "canonical_type",
    "is_storage_compatible",
    "Declaration",
    "DeclarationIndex",
    "SourceRange",
    "index_source",
    "index_source_file",
]
