"""
storage_check.forge
~~~~~~~~~~~~~~~~~~~

Produce layout snapshots with Foundry: either for one contract of the
working tree, or for every contract of a git revision.

Hardhat artifacts are ignored: this is Foundry-only.
"""

from __future__ import annotations

import json
import logging
import subprocess
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set

import git
import typer

from .errors import ForgeError, MalformedLayout
from .layout import parse_layout
from .model import StorageLayout

logger = logging.getLogger(__name__)

# List of path prefixes we ignore when gathering contracts
_IGNORE_PREFIXES = ("lib/", "test/", "script/")


@dataclass(frozen=True)
class ContractSnapshot:
    layout: StorageLayout
    source_path: str
    source_text: Optional[str] = None


# ──────────────────────────────────────────────
# Process helpers
# ──────────────────────────────────────────────
def run(cmd: List[str]) -> str:
    """Run `cmd`, return stdout, raise `ForgeError` on non-zero exit."""
    logger.debug("running %s", " ".join(cmd))
    res = subprocess.run(cmd, capture_output=True, text=True)
    if res.returncode != 0:
        raise ForgeError(cmd, res.returncode, res.stderr.strip())
    return res.stdout.strip()


def build() -> None:
    run(["forge", "clean", "--silent"])
    run(["forge", "build", "--silent", "--skip", "test", "--skip", "script"])


def inspect_layout(contract: str) -> str:
    """Raw ``forge inspect <contract> storage-layout --json`` output."""
    return run(["forge", "inspect", contract, "storage-layout", "--json"])


def source_path_of(contract: str) -> str:
    """``src/Vault.sol:Vault`` -> ``src/Vault.sol``."""
    return contract.rsplit(":", 1)[0] if ":" in contract else contract


# ──────────────────────────────────────────────
# Artifacts
# ──────────────────────────────────────────────
def artifact_contract_ids(out_dir: str = "out") -> List[str]:
    """
    Scan `out_dir` for Foundry artifacts and return identifiers accepted by
    `forge inspect`, in the canonical ``<relative-path>.sol:<Contract>`` form.

    Works even when artifacts lack ``sourcePath`` / ``sourceName`` by reading
    the embedded compiler metadata.

    Returns
    -------
    List[str]
        Ordered list without duplicates. Example:
        ["src/Vault.sol:Vault", "src/Token.sol:Token"]
    """
    seen: Set[str] = set()
    id_list: List[str] = []

    for art in sorted(Path(out_dir).rglob("*.json")):
        # Skip debug and build-info blobs
        if art.name.endswith(".dbg.json") or "build-info" in art.parts:
            continue

        try:
            meta = json.loads(art.read_text())
        except (OSError, ValueError) as exc:
            logger.debug("skipping unreadable artifact %s: %s", art, exc)
            continue

        # 1. legacy keys
        source = meta.get("sourcePath") or meta.get("sourceName")
        name = meta.get("contractName")

        # 2. prefer metadata.settings.compilationTarget
        md = meta.get("metadata")
        if md:
            try:
                md_obj = json.loads(md) if isinstance(md, str) else md
                comp_target = md_obj.get("settings", {}).get("compilationTarget", {})
            except (ValueError, AttributeError):
                comp_target = {}  # keep the legacy data already read
            if comp_target:
                # there should be exactly one entry
                source, name = next(iter(comp_target.items()))

        # 3. derive from the artifact path if still missing
        if not source and art.parent.name.endswith(".sol"):
            source = Path(*art.parent.parts[1:]).as_posix()
        if not name:
            name = art.stem

        if not source or not name:
            continue

        ident = f"{source}:{name}"
        if any(ident.startswith(p) for p in _IGNORE_PREFIXES):
            continue
        if ident not in seen:
            seen.add(ident)
            id_list.append(ident)

    return id_list


# ──────────────────────────────────────────────
# Git revisions
# ──────────────────────────────────────────────
@contextmanager
def preserved_head(repo: git.Repo) -> Iterator[str]:
    """Check the current commit out again when the block exits."""
    current = repo.head.commit.hexsha
    try:
        yield current
    finally:
        repo.git.checkout(current)
        try:
            repo.git.submodule("update", "--init", "--recursive")
        except git.GitCommandError as exc:
            logger.debug("submodule update skipped: %s", exc)


def collect_layouts(repo: git.Repo, ref: str,
                    include_paths: Optional[List[str]] = None) -> Dict[str, ContractSnapshot]:
    """
    • checkout `ref`
    • compile with Foundry
    • return {contract -> ContractSnapshot}

    Contracts whose layout cannot be inspected or parsed (libraries,
    interfaces) are left out with a log record.
    """
    repo.git.checkout(ref)
    # ensure submodules match that revision
    repo.git.submodule("update", "--init", "--recursive")
    build()

    all_idents = artifact_contract_ids()
    if include_paths:
        all_idents = [i for i in all_idents if any(i.startswith(p) for p in include_paths)]

    total = len(all_idents)
    snapshots: Dict[str, ContractSnapshot] = {}
    for idx, ident in enumerate(all_idents, 1):
        typer.echo(f"      [{idx}/{total}] {ident}", err=True)
        try:
            raw = inspect_layout(ident)
            if not raw:
                continue
            layout = parse_layout(raw, ident)
        except (ForgeError, MalformedLayout) as exc:
            logger.warning("skipping %s: %s", ident, exc)
            continue
        if not len(layout):
            continue

        source_path = source_path_of(ident)
        try:
            source_text = Path(source_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("cannot read %s: %s", source_path, exc)
            source_text = None
        snapshots[ident] = ContractSnapshot(layout, source_path, source_text)

    return snapshots
