"""Exception hierarchy shared by every stage of the storage check."""

from __future__ import annotations

from typing import Optional


class StorageCheckError(Exception):
    """Base class for all errors raised by `storage_check`."""


class MalformedLayout(StorageCheckError):
    """A layout snapshot is unreadable or violates a layout invariant."""

    def __init__(self, message: str, contract: Optional[str] = None,
                 entry: Optional[int] = None, field: Optional[str] = None):
        self.contract = contract
        self.entry = entry
        self.field = field
        where = []
        if contract:
            where.append(f"contract {contract}")
        if entry is not None:
            where.append(f"entry #{entry}")
        if field:
            where.append(f"field '{field}'")
        super().__init__(f"{message} ({', '.join(where)})" if where else message)


class LayoutMismatch(StorageCheckError):
    """The two layouts being compared belong to different contracts."""

    def __init__(self, before: str, after: str):
        self.before = before
        self.after = after
        super().__init__(f"cannot compare layout of {before} with layout of {after}")


class UnparsableSource(StorageCheckError):
    """The contract source could not be tokenized at all."""

    def __init__(self, message: str, path: str = "", line: Optional[int] = None):
        self.path = path
        self.line = line
        loc = path or "<source>"
        if line is not None:
            loc = f"{loc}:{line}"
        super().__init__(f"{loc}: {message}")


class UnresolvedLocation(StorageCheckError):
    """No declaration in the scanned source matches a difference's label."""

    def __init__(self, label: str, path: str = ""):
        self.label = label
        self.path = path
        super().__init__(f"no declaration of '{label}' found in {path or '<source>'}")


class ForgeError(StorageCheckError):
    """An external `forge` / `git` invocation failed."""

    def __init__(self, cmd, returncode: int, stderr: str = ""):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"{' '.join(self.cmd)} failed with exit code {returncode}")
