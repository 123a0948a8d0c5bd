#! /usr/bin/env python3
"""
storage-check
~~~~~~~~~~~~~

Check that a change to a contract's storage layout is safe to upgrade.

Usage
-----
    storage-check check <BEFORE.json> <AFTER.json> --source src/Vault.sol
    storage-check ci --contract src/Vault.sol:Vault --base main --head my-branch
    storage-check diff <OLD_COMMIT> <NEW_COMMIT>

`check` compares two snapshot files, `ci` inspects the working tree with
forge and compares it with the report stored by the base branch, `diff`
builds two git revisions and compares every contract.

Exit codes: 0 safe, 1 the failure policy matched, 2 invalid input.
"""

from __future__ import annotations

import enum
import json
import logging
from pathlib import Path
from typing import List, Optional

import git
import typer
from colorama import init as colorama_init

from .check import CheckResult, check_layouts, compare_layouts
from .errors import ForgeError, LayoutMismatch, MalformedLayout, StorageCheckError
from .forge import collect_layouts, inspect_layout, preserved_head, source_path_of
from .format import format_console, format_github, to_record
from .model import StorageLayout
from .policy import POLICIES, Policy
from .report import DirectoryReportStore, load_reference, report_key

# ──────────────────────────────────────────────
# CLI set-up
# ──────────────────────────────────────────────
app = typer.Typer(help="Check storage layout changes for upgrade safety")
colorama_init()  # enable ANSI colours on Windows too


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug records to stderr.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ──────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────
class FailPolicy(str, enum.Enum):
    errors = "errors"
    removed = "removed"
    changes = "changes"
    never = "never"


_POLICY_HELP = (
    "When to exit with 1: on error-severity differences (errors), on removed "
    "variables (removed), on any difference (changes) or never."
)


def _policy(choice: FailPolicy) -> Policy:
    return POLICIES[choice.value]


def _fatal(exc: StorageCheckError) -> typer.Exit:
    typer.secho(f"❌  {exc}", fg=typer.colors.RED, err=True)
    if isinstance(exc, ForgeError) and exc.stderr:
        typer.echo(exc.stderr, err=True)
    return typer.Exit(2)


def _read_source(path: Optional[Path]) -> Optional[str]:
    if path is None:
        return None
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        typer.secho(f"⚠️  cannot read {path}: {exc}", fg=typer.colors.YELLOW, err=True)
        return None


def _emit(result: CheckResult, github: bool, as_json: bool) -> None:
    for warning in result.index.warnings:
        typer.echo(f"⚠️  {result.index.path or '<source>'}: {warning}", err=True)
    if as_json:
        typer.echo(json.dumps([to_record(f) for f in result.formatted], indent=2))
        return
    for formatted in result.formatted:
        typer.echo(format_github(formatted) if github else format_console(formatted))


def _conclude(result: CheckResult, policy: Policy) -> None:
    if result.failed(policy):
        typer.secho("❌  Unsafe storage layout changes detected. Please see above for details.",
                    fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    typer.echo("✅  Storage layout is upgrade safe.", err=True)


# ──────────────────────────────────────────────
# Commands
# ──────────────────────────────────────────────
@app.command()
def check(
    before: Path = typer.Argument(..., exists=True, dir_okay=False, help="reference layout snapshot"),
    after: Path = typer.Argument(..., exists=True, dir_okay=False, help="candidate layout snapshot"),
    source: Optional[Path] = typer.Option(None, "--source", "-s", help="Solidity source of the candidate."),
    contract: Optional[str] = typer.Option(None, "--contract", "-c", envvar="STORAGE_CHECK_CONTRACT",
                                           help="Contract name for snapshots that lack one."),
    github: bool = typer.Option(False, "--github", envvar="STORAGE_CHECK_GITHUB",
                                help="Print GitHub workflow annotations."),
    as_json: bool = typer.Option(False, "--json", help="Print difference records as JSON."),
    policy: FailPolicy = typer.Option(FailPolicy.errors, "--policy", envvar="STORAGE_CHECK_POLICY",
                                      help=_POLICY_HELP),
) -> None:
    """Compare two layout snapshot files."""
    try:
        result = check_layouts(before.read_bytes(), after.read_bytes(),
                               _read_source(source), str(source or ""), contract)
    except (MalformedLayout, LayoutMismatch) as exc:
        raise _fatal(exc) from exc

    _emit(result, github, as_json)
    _conclude(result, _policy(policy))


@app.command()
def ci(
    contract: str = typer.Option(..., "--contract", "-c", envvar="STORAGE_CHECK_CONTRACT",
                                 help="Contract to inspect, e.g. src/Vault.sol:Vault."),
    base: str = typer.Option(..., "--base", envvar="STORAGE_CHECK_BASE",
                             help="Branch holding the reference report."),
    head: str = typer.Option(..., "--head", envvar="STORAGE_CHECK_HEAD",
                             help="Branch the new report is stored for."),
    report_dir: Path = typer.Option(Path(".storage-layout"), "--report-dir", envvar="STORAGE_CHECK_REPORT_DIR",
                                    help="Directory the reports are stored in."),
    github: bool = typer.Option(False, "--github", envvar="STORAGE_CHECK_GITHUB",
                                help="Print GitHub workflow annotations."),
    policy: FailPolicy = typer.Option(FailPolicy.errors, "--policy", envvar="STORAGE_CHECK_POLICY",
                                      help=_POLICY_HELP),
) -> None:
    """
    Inspect CONTRACT with forge, store its report for HEAD and compare it
    with the report stored for BASE (itself on a first run).
    """
    store = DirectoryReportStore(report_dir)
    try:
        typer.echo(f"⏳  Generating storage layout of {contract} …", err=True)
        current = inspect_layout(contract).encode()
        store.put(report_key(head, contract), current)

        reference = load_reference(store, report_key(base, contract), current)
        source_path = source_path_of(contract)
        result = check_layouts(reference, current, _read_source(Path(source_path)),
                               source_path, contract)
    except (ForgeError, MalformedLayout, LayoutMismatch) as exc:
        raise _fatal(exc) from exc

    _emit(result, github, False)
    _conclude(result, _policy(policy))


@app.command()
def diff(
    old_commit: str = typer.Argument(..., help="older git commit / tag / branch"),
    new_commit: str = typer.Argument(..., help="newer git commit / tag / branch"),
    path: List[str] = typer.Option(
        None,
        "--path",
        "-p",
        help="Source-file prefix(es) to include, e.g. 'src/' or 'src/Vault.sol'. "
             "If omitted, every contract in the project is inspected.",
    ),
    policy: FailPolicy = typer.Option(FailPolicy.errors, "--policy", envvar="STORAGE_CHECK_POLICY",
                                      help=_POLICY_HELP),
) -> None:
    """
    Compare storage layouts of *all* contracts at two git revisions.

    Prints only the differences.
    """
    repo = git.Repo(Path("."), search_parent_directories=True)

    if repo.is_dirty(untracked_files=True):
        typer.secho("⚠️  Please commit or stash your changes first.", fg=typer.colors.RED)
        raise typer.Exit(2)

    try:
        with preserved_head(repo):
            typer.echo(f"⏳  Collecting layouts at {old_commit} …")
            old_snapshots = collect_layouts(repo, old_commit, path)

            typer.echo(f"⏳  Collecting layouts at {new_commit} …")
            new_snapshots = collect_layouts(repo, new_commit, path)
    except ForgeError as exc:
        raise _fatal(exc) from exc

    fail_policy = _policy(policy)
    failed = False
    for c in sorted(set(old_snapshots) | set(new_snapshots)):
        old, new = old_snapshots.get(c), new_snapshots.get(c)
        result = compare_layouts(
            old.layout if old else StorageLayout(c),
            new.layout if new else StorageLayout(c),
            (new or old).source_text,
            (new or old).source_path,
        )
        if not result.formatted:
            continue
        typer.secho(f"\nContract: {c.split(':')[-1]}", fg=typer.colors.CYAN, bold=True)
        for formatted in result.formatted:
            typer.echo(format_console(formatted))
        failed = failed or result.failed(fail_policy)

    if failed:
        typer.secho("\n❌  Unsafe storage layout changes detected.", fg=typer.colors.RED)
        raise typer.Exit(1)
    typer.echo("\n✅  Done.")


# ──────────────────────────────────────────────
# Entrypoint
# ──────────────────────────────────────────────
if __name__ == "__main__":
    app()
