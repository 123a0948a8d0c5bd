"""Normalized storage layout model."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from .solidity_types import type_category

SLOT_SIZE = 32


@dataclass(frozen=True)
class StorageVariable:
    """One persistent variable as assigned by the compiler."""
    label: str
    type_id: str  # canonical, see `solidity_types.canonical_type`
    slot: int
    offset: int  # byte offset inside `slot` (0-31)
    size_bytes: int
    contract: Optional[str] = None  # declaring contract, a base for inherited variables

    @property
    def start(self) -> int:
        """Absolute byte position of the variable's first byte."""
        return self.slot * SLOT_SIZE + self.offset

    @property
    def end(self) -> int:
        return self.start + self.size_bytes

    @property
    def type_category(self) -> str:
        return type_category(self.type_id)

    def describe(self) -> str:
        return f"[slot {self.slot:>3} | offset {self.offset:>2}] {self.label} : {self.type_id}"


@dataclass(frozen=True)
class StorageLayout:
    """Storage variables of one contract, in declaration order."""
    contract: Optional[str]
    variables: Tuple[StorageVariable, ...] = field(default_factory=tuple)

    def __iter__(self) -> Iterator[StorageVariable]:
        return iter(self.variables)

    def __len__(self) -> int:
        return len(self.variables)

    @property
    def labels(self) -> List[str]:
        return [v.label for v in self.variables]
