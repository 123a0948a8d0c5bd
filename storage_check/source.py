"""
storage_check.source
~~~~~~~~~~~~~~~~~~~~

Best-effort index of the state variables declared in a Solidity source unit.

The indexer only needs the list of members of each contract, so it tokenizes
the text and walks contract bodies by brace depth: function bodies are
skipped without being parsed, which keeps it working on sources whose
function bodies do not compile. Problems that only lose part of the index are
reported as warnings on the result; `UnparsableSource` is raised only when the
text cannot be tokenized at all.
"""

from __future__ import annotations

import bisect
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Tuple

from .errors import UnparsableSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceRange:
    """1-based positions; the end column points just past the last character."""
    start_line: int
    start_column: int
    end_line: int
    end_column: int


@dataclass(frozen=True)
class Declaration:
    label: str
    source_path: str
    range: SourceRange
    contract: Optional[str] = None


@dataclass(frozen=True)
class DeclarationIndex:
    path: str
    declarations: Dict[str, Declaration] = field(default_factory=dict)
    warnings: Tuple[str, ...] = ()
    line_count: int = 1

    def lookup(self, label: str, contract: Optional[str] = None) -> Optional[Declaration]:
        """Find `label`, preferring the declaration inside `contract` when given.

        `contract` may be a bare name or a qualified ``path/File.sol:Name``.
        """
        if contract:
            name = contract.rsplit(":", 1)[-1].rsplit(".", 1)[-1]
            found = self.declarations.get(f"{name}.{label}")
            if found is not None:
                return found
        return self.declarations.get(label)

    def file_location(self) -> Declaration:
        """Location spanning the whole source unit."""
        return Declaration(label="", source_path=self.path,
                           range=SourceRange(1, 1, max(self.line_count, 1), 1))


# ──────────────────────────────────────────────
# Tokenizer
# ──────────────────────────────────────────────
class _Token(NamedTuple):
    kind: str
    text: str
    start: int
    end: int


_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<comment>//[^\n]*|/\*.*?\*/)
  | (?P<string>(?:hex|unicode)?(?:"(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*'))
  | (?P<ident>[A-Za-z_$][A-Za-z0-9_$]*)
  | (?P<number>0[xX][0-9a-fA-F_]+|\d[\d_]*(?:\.\d[\d_]*)?(?:[eE]-?\d+)?|\.\d[\d_]*)
  | (?P<punct>=>|==|!=|<=|>=|&&|\|\||\+\+|--|<<|>>|\*\*|[-+*/%=<>!&|^~?:;,.(){}\[\]@])
""", re.S | re.X)


def _tokenize(text: str, path: str, warnings: List[str], lines: "_Lines") -> List[_Token]:
    tokens: List[_Token] = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if text.startswith("/*", pos) and (m is None or m.lastgroup != "comment"):
            raise UnparsableSource("unterminated block comment", path, lines.line(pos))
        if m is None:
            if text[pos] in "\"'":
                raise UnparsableSource("unterminated string literal", path, lines.line(pos))
            warnings.append(f"line {lines.line(pos)}: unexpected character {text[pos]!r}")
            pos += 1
            continue
        if m.lastgroup not in ("ws", "comment"):
            tokens.append(_Token(m.lastgroup, m.group(0), m.start(), m.end()))
        pos = m.end()
    return tokens


class _Lines:
    def __init__(self, text: str):
        self.starts = [0] + [m.end() for m in re.finditer(r"\n", text)]

    def line(self, pos: int) -> int:
        return bisect.bisect_right(self.starts, pos)

    def position(self, pos: int) -> Tuple[int, int]:
        line = self.line(pos)
        return line, pos - self.starts[line - 1] + 1


# ──────────────────────────────────────────────
# Contract walker
# ──────────────────────────────────────────────
_CONTAINERS = ("contract", "library", "interface")
_NON_STORAGE_MEMBERS = {
    "function", "modifier", "constructor", "fallback", "receive", "event",
    "error", "struct", "enum", "using", "type",
}
_NO_SLOT = {"constant", "immutable", "transient"}
_RESERVED = {
    "public", "private", "internal", "external", "pure", "view", "payable",
    "virtual", "override", "returns", "memory", "storage", "calldata",
    "constant", "immutable", "transient", "mapping", "function",
}
_OPEN = {"(": ")", "[": "]", "{": "}"}


class _Walker:
    def __init__(self, tokens: List[_Token], path: str, lines: _Lines, warnings: List[str]):
        self.tokens = tokens
        self.path = path
        self.lines = lines
        self.warnings = warnings
        self.declarations: Dict[str, Declaration] = {}

    def _warn(self, tok: _Token, message: str) -> None:
        self.warnings.append(f"line {self.lines.line(tok.start)}: {message}")

    def _text(self, i: int) -> str:
        return self.tokens[i].text if i < len(self.tokens) else ""

    def _skip_group(self, i: int) -> int:
        """`tokens[i]` opens a group; return the index after its closing token.

        Only the opener's own bracket kind is counted, so a stray `(` inside
        a function body does not swallow the rest of the contract.
        """
        open_ch = self.tokens[i].text
        close_ch = _OPEN[open_ch]
        depth = 0
        for j in range(i, len(self.tokens)):
            text = self.tokens[j].text
            if text == open_ch:
                depth += 1
            elif text == close_ch:
                depth -= 1
                if depth == 0:
                    return j + 1
        self._warn(self.tokens[i], f"unbalanced '{self.tokens[i].text}'")
        return len(self.tokens)

    def _statement_end(self, i: int) -> Tuple[int, str]:
        """Index of the first `;`, `{` or unmatched `}` at depth 0 from `i`."""
        j = i
        while j < len(self.tokens):
            text = self.tokens[j].text
            if text in (";", "{", "}"):
                return j, text
            if text in ("(", "["):
                j = self._skip_group(j)
                continue
            j += 1
        return j, ""

    def walk(self) -> Dict[str, Declaration]:
        i = 0
        while i < len(self.tokens):
            text = self.tokens[i].text
            if text == "abstract" and self._text(i + 1) == "contract":
                i += 1
                text = "contract"
            if text in _CONTAINERS and self.tokens[i].kind == "ident" \
                    and i + 1 < len(self.tokens) and self.tokens[i + 1].kind == "ident":
                name = self.tokens[i + 1].text
                end, found = self._statement_end(i + 2)
                if found != "{":
                    self._warn(self.tokens[i], f"{text} {name} has no body")
                    i = end + 1
                    continue
                i = self._body(end + 1, name)
            elif text == "{":
                i = self._skip_group(i)
            else:
                i += 1
        return self.declarations

    def _body(self, i: int, contract: str) -> int:
        while i < len(self.tokens):
            tok = self.tokens[i]
            if tok.text == "}":
                return i + 1
            if tok.text == ";":
                i += 1
                continue

            end, found = self._statement_end(i)
            is_function_type = tok.text == "function" and self._text(i + 1) == "("
            if tok.text in _NON_STORAGE_MEMBERS and not (is_function_type and found == ";"):
                if found == "{":
                    i = self._skip_group(end)
                elif found == ";":
                    i = end + 1
                elif found == "}":
                    self._warn(tok, f"unterminated {tok.text} in {contract}")
                    i = end
                else:
                    break
                continue

            if found == ";":
                self._declaration(i, end, contract)
                i = end + 1
            elif found == "{":
                self._warn(tok, f"unrecognized member of {contract}")
                i = self._skip_group(end)
            elif found == "}":
                self._warn(tok, f"unterminated declaration in {contract}")
                i = end
            else:
                break
        self._warn(self.tokens[-1], f"contract {contract} is not closed")
        return len(self.tokens)

    def _declaration(self, start: int, semi: int, contract: str) -> None:
        decl = self.tokens[start:semi]
        head = decl
        for k, tok in enumerate(decl):
            if tok.text == "=":
                head = decl[:k]
                break
        if any(t.text in _NO_SLOT for t in head):
            return
        if len(head) < 2 or head[-1].kind != "ident" or head[-1].text in _RESERVED:
            self._warn(decl[0], f"cannot find the name of a declaration in {contract}")
            return

        label = head[-1].text
        start_line, start_col = self.lines.position(decl[0].start)
        end_line, end_col = self.lines.position(self.tokens[semi].end - 1)
        declaration = Declaration(
            label=label,
            source_path=self.path,
            range=SourceRange(start_line, start_col, end_line, end_col + 1),
            contract=contract,
        )
        self.declarations[f"{contract}.{label}"] = declaration
        self.declarations.setdefault(label, declaration)


# ──────────────────────────────────────────────
# Public API
# ──────────────────────────────────────────────
def index_source(text: str, path: str = "") -> DeclarationIndex:
    """
    Index the state variables declared in `text`.

    Keys are bare labels (first declaration wins) and ``Contract.label``.

    Raises
    ------
    UnparsableSource
        If the text is empty or cannot be tokenized.
    """
    warnings: List[str] = []
    lines = _Lines(text)
    tokens = _tokenize(text, path, warnings, lines)
    if not tokens:
        raise UnparsableSource("no tokens in source", path)

    declarations = _Walker(tokens, path, lines, warnings).walk()
    if not declarations:
        warnings.append("no state variable declarations found")
    for warning in warnings:
        logger.debug("%s: %s", path or "<source>", warning)

    return DeclarationIndex(
        path=path,
        declarations=declarations,
        warnings=tuple(warnings),
        line_count=len(lines.starts),
    )


def index_source_file(path) -> DeclarationIndex:
    """Read `path` as UTF-8 and index it."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise UnparsableSource(f"cannot read source: {exc}", str(path)) from exc
    return index_source(text, str(path))
