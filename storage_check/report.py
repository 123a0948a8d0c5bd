"""
storage_check.report
~~~~~~~~~~~~~~~~~~~~

Key/value storage of layout snapshots across CI runs.

A run stores its own ("head") snapshot and looks up the snapshot stored by a
run on the base branch. A missing reference is a normal first-run condition.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


def report_key(branch: str, contract: str) -> str:
    """
    Name of the report of `contract` on `branch`.

    >>> report_key("feature/vault", "src/Vault.sol:Vault")
    'feature-vault.src_Vault.sol-Vault.json'
    """
    branch = re.sub(r"[/\\]", "-", branch)
    contract = contract.replace("/", "_").replace(":", "-")
    return f"{branch}.{contract}.json"


class ReportStore:
    """Interface of a snapshot store."""

    def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes, or None when nothing is stored under `key`."""
        raise NotImplementedError

    def put(self, key: str, data: bytes) -> None:
        raise NotImplementedError


class MemoryReportStore(ReportStore):
    def __init__(self, reports: Optional[Dict[str, bytes]] = None):
        self.reports: Dict[str, bytes] = dict(reports or {})

    def get(self, key: str) -> Optional[bytes]:
        return self.reports.get(key)

    def put(self, key: str, data: bytes) -> None:
        self.reports[key] = data


class DirectoryReportStore(ReportStore):
    """One file per key under `root`."""

    def __init__(self, root):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        if "/" in key or "\\" in key or key in ("", ".", ".."):
            raise ValueError(f"invalid report key {key!r}")
        return self.root / key

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self._path(key).read_bytes()
        except FileNotFoundError:
            return None

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info("stored report %s (%d bytes)", path, len(data))


def load_reference(store: ReportStore, key: str, fallback: bytes) -> bytes:
    """Stored snapshot under `key`, or `fallback` when there is none yet."""
    found = store.get(key)
    if found is None:
        logger.warning("no reference report named %s; comparing against the current layout", key)
        return fallback
    logger.info("loaded reference report %s", key)
    return found
