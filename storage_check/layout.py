"""
storage_check.layout
~~~~~~~~~~~~~~~~~~~~

Turn a raw storage layout snapshot into a `StorageLayout`.

Accepted snapshots
------------------
* ``forge inspect <C> storage-layout --json`` output, i.e. ``{"storage": [...],
  "types": {...}}``. Entry types are ids resolved through ``types``.
* a bare list of entries, or ``{"contract": ..., "storage": [...]}`` where
  every entry carries its own ``bytes``.
* the pretty table printed by ``forge inspect`` without ``--json``
  (``| Name | Type | Slot | Offset | Bytes | Contract |``).

Fields the parser does not know are ignored.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Union

from .errors import MalformedLayout
from .model import SLOT_SIZE, StorageLayout, StorageVariable
from .solidity_types import canonical_type

logger = logging.getLogger(__name__)

RawSnapshot = Union[str, bytes, Dict[str, Any], List[Any]]

_TABLE_FIELDS = ("label", "type", "slot", "offset", "bytes", "contract")


# ──────────────────────────────────────────────
# Raw input shapes
# ──────────────────────────────────────────────
def _parse_table(text: str) -> List[Dict[str, str]]:
    """Parse the pretty table (| name | type | slot | offset | bytes | contract |)."""
    rows: List[Dict[str, str]] = []
    for line in text.splitlines():
        line = line.strip()
        if not line.startswith("|"):
            continue
        cols = [c.strip() for c in line.split("|")[1:-1]]
        if len(cols) < 5 or cols[0].lower() in ("name", "variable", ""):
            continue  # header / separator
        if all(set(c) <= set("-=+: ") for c in cols):
            continue
        rows.append(dict(zip(_TABLE_FIELDS, cols)))
    return rows


def _load(raw: RawSnapshot, contract: Optional[str]):
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            if not raw.strip():
                raise MalformedLayout("snapshot is empty", contract=contract)
            rows = _parse_table(raw)
            if not rows and not any(line.lstrip().startswith("|") for line in raw.splitlines()):
                raise MalformedLayout("snapshot is neither JSON nor a storage layout table",
                                      contract=contract)
            return rows, {}, None

    if isinstance(raw, list):
        return raw, {}, None
    if isinstance(raw, dict):
        if "storage" not in raw:
            raise MalformedLayout("snapshot has no storage entries", contract=contract,
                                  field="storage")
        storage = raw["storage"]
        types = raw.get("types") or {}
        if storage is None:
            storage = []  # solc emits null for contracts without state
        if not isinstance(storage, list) or not isinstance(types, dict):
            raise MalformedLayout("snapshot storage must be a list", contract=contract,
                                  field="storage")
        return storage, types, raw.get("contract")
    raise MalformedLayout(f"unsupported snapshot of type {type(raw).__name__}",
                          contract=contract)


# ──────────────────────────────────────────────
# Field validation
# ──────────────────────────────────────────────
def _as_int(value: Any, field: str, contract: Optional[str], idx: int) -> int:
    if isinstance(value, bool) or value is None:
        raise MalformedLayout("missing or non-numeric value", contract=contract,
                              entry=idx, field=field)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip(), 0)  # decimal or 0xHEX
        except ValueError:
            pass
    raise MalformedLayout(f"non-numeric value {value!r}", contract=contract,
                          entry=idx, field=field)


def _as_text(value: Any, field: str, contract: Optional[str], idx: int) -> str:
    if not isinstance(value, str) or not value.strip():
        raise MalformedLayout("missing value", contract=contract, entry=idx, field=field)
    return value.strip()


def _variable(entry: Any, idx: int, types: Dict[str, Any],
              contract: Optional[str]) -> StorageVariable:
    if not isinstance(entry, dict):
        raise MalformedLayout("entry is not a record", contract=contract, entry=idx)

    label = _as_text(entry.get("label"), "label", contract, idx)
    type_raw = _as_text(entry.get("type"), "type", contract, idx)
    type_info = types.get(type_raw)
    if not isinstance(type_info, dict):
        type_info = {}

    size = entry.get("bytes", entry.get("numberOfBytes", type_info.get("numberOfBytes")))
    slot = _as_int(entry.get("slot"), "slot", contract, idx)
    offset = _as_int(entry.get("offset"), "offset", contract, idx)
    size = _as_int(size, "bytes", contract, idx)

    if slot < 0:
        raise MalformedLayout(f"negative slot {slot}", contract=contract, entry=idx, field="slot")
    if not 0 <= offset < SLOT_SIZE:
        raise MalformedLayout(f"offset {offset} outside of a {SLOT_SIZE}-byte slot",
                              contract=contract, entry=idx, field="offset")
    if size <= 0:
        raise MalformedLayout(f"non-positive size {size}", contract=contract,
                              entry=idx, field="bytes")

    return StorageVariable(
        label=label,
        type_id=canonical_type(type_info.get("label") or type_raw),
        slot=slot,
        offset=offset,
        size_bytes=size,
        contract=entry.get("contract") or None,
    )


def _check_overlaps(variables: List[StorageVariable], contract: Optional[str]) -> None:
    by_start = sorted(enumerate(variables), key=lambda p: (p[1].start, p[1].end))
    for (_, prev), (idx, cur) in zip(by_start, by_start[1:]):
        if cur.start < prev.end:
            raise MalformedLayout(
                f"'{cur.label}' at slot {cur.slot}/{cur.offset} overlaps '{prev.label}' "
                f"at slot {prev.slot}/{prev.offset}",
                contract=contract, entry=idx, field="slot",
            )


# ──────────────────────────────────────────────
# Public API
# ──────────────────────────────────────────────
def parse_layout(raw: RawSnapshot, contract: Optional[str] = None) -> StorageLayout:
    """
    Normalize a raw snapshot.

    Parameters
    ----------
    raw
        JSON text/bytes, an already decoded JSON value, or forge's table.
    contract
        Contract-qualified name (``src/Vault.sol:Vault``) of the inspected
        contract. Defaults to the snapshot's own ``contract`` field. The
        ``contract`` field of an entry names the contract declaring that
        variable and is kept on the variable only.

    Raises
    ------
    MalformedLayout
        On any missing/non-numeric required field or overlapping entries.
        Nothing is returned for a partially valid snapshot.
    """
    entries, types, declared = _load(raw, contract)
    if contract is None:
        contract = declared or None
    elif declared and declared != contract:
        logger.debug("snapshot names %s, checking it as %s", declared, contract)

    variables = [_variable(e, idx, types, contract) for idx, e in enumerate(entries)]
    _check_overlaps(variables, contract)

    logger.debug("parsed %d storage variables for %s", len(variables), contract or "<unnamed>")
    return StorageLayout(contract=contract, variables=tuple(variables))
