"""
storage_check.solidity_types
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Canonical spelling of Solidity storage types and the storage-compatibility
relation used to tell a harmless type rename from a state-corrupting one.

Compilers spell the same type in several ways: `forge inspect` JSON uses ids
such as ``t_mapping(t_address,t_uint256)`` or ``t_struct(Pool)1234_storage``,
the pretty table and the `types` section use labels such as
``mapping(address => uint256)`` or ``struct Vault.Pool``. `canonical_type`
turns all of them into one label form so plain string equality can be used.

Categories
----------
value          integers, bool, address, fixed bytes, enums, contracts,
               user-defined value types, function types
bytes          dynamic ``bytes`` and ``string``
mapping        ``mapping(K => V)``
dynamic_array  ``T[]``
static_array   ``T[N]``
struct         ``struct S``
"""

from __future__ import annotations

import re
from typing import Optional, Tuple

VALUE = "value"
BYTES = "bytes"
MAPPING = "mapping"
DYNAMIC_ARRAY = "dynamic_array"
STATIC_ARRAY = "static_array"
STRUCT = "struct"

_ALIASES = {
    "uint": "uint256",
    "int": "int256",
    "byte": "bytes1",
    "ufixed": "ufixed128x18",
    "fixed": "fixed128x18",
}
_NAMED_KINDS = ("struct", "enum", "contract")
_LOCATION_RE = re.compile(r"\s+(?:storage|memory|calldata)(?:\s+(?:ref|pointer|slice))?(?=$|[\s\[\),])")
_ID_LOCATION_RE = re.compile(r"_(?:storage|memory|calldata)(?:_ptr)?$")
_IDENT_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_ARRAY_LEN_RE = re.compile(r"dyn|\d+")
_NAMED_ID_RE = re.compile(r"t_(struct|enum|contract|userDefinedValueType)\(([^)]*)\)\d*")
_ELEMENTARY_ID_RE = re.compile(r"t_([A-Za-z0-9_$]+)")
_LOCATION_ID_SUFFIX_RE = re.compile(r"_(?:storage|memory|calldata)(?:_ptr)?")


# ──────────────────────────────────────────────
# Compiler type ids (t_...)
# ──────────────────────────────────────────────
class _IdSyntaxError(ValueError):
    pass


def _parse_id(s: str, i: int) -> Tuple[str, int]:
    if s.startswith("t_mapping(", i):
        key, i = _parse_id(s, i + len("t_mapping("))
        i = _expect(s, i, ",")
        value, i = _parse_id(s, i)
        i = _expect(s, i, ")")
        return f"mapping({key} => {value})", _skip_location(s, i)

    if s.startswith("t_array(", i):
        elem, i = _parse_id(s, i + len("t_array("))
        i = _expect(s, i, ")")
        m = _ARRAY_LEN_RE.match(s, i)
        if not m:
            raise _IdSyntaxError(s)
        length = "" if m.group(0) == "dyn" else m.group(0)
        return f"{elem}[{length}]", _skip_location(s, m.end())

    m = _NAMED_ID_RE.match(s, i)
    if m:
        kind, name = m.group(1), m.group(2).split(".")[-1]
        label = name if kind == "userDefinedValueType" else f"{kind} {name}"
        return label, _skip_location(s, m.end())

    m = _ELEMENTARY_ID_RE.match(s, i)
    if not m or s[m.end():m.end() + 1] == "(":
        raise _IdSyntaxError(s)
    name = _ID_LOCATION_RE.sub("", m.group(1))
    if name == "address_payable":
        name = "address"
    return name, m.end()


def _expect(s: str, i: int, ch: str) -> int:
    if s[i:i + 1] != ch:
        raise _IdSyntaxError(s)
    return i + 1


def _skip_location(s: str, i: int) -> int:
    m = _LOCATION_ID_SUFFIX_RE.match(s, i)
    return m.end() if m else i


def _from_id(type_id: str) -> str:
    try:
        label, end = _parse_id(type_id, 0)
    except (_IdSyntaxError, IndexError):
        # unknown id shape: at least drop the AST ids, which change on every build
        return re.sub(r"\)\d+", ")", type_id)
    if end != len(type_id):
        return re.sub(r"\)\d+", ")", type_id)
    return label


# ──────────────────────────────────────────────
# Labels
# ──────────────────────────────────────────────
def _matching_open(s: str, close_idx: int, open_ch: str, close_ch: str) -> int:
    depth = 0
    for i in range(close_idx, -1, -1):
        if s[i] == close_ch:
            depth += 1
        elif s[i] == open_ch:
            depth -= 1
            if depth == 0:
                return i
    return -1


def _split_top_level(s: str, sep: str) -> Optional[Tuple[str, str]]:
    depth = 0
    for i, ch in enumerate(s):
        if ch in "([":
            depth += 1
        elif ch in ")]":
            depth -= 1
        elif depth == 0 and s.startswith(sep, i):
            return s[:i], s[i + len(sep):]
    return None


def _drop_parameter_name(s: str) -> str:
    """Strip the optional name of a named mapping key/value (`address owner`)."""
    if s.startswith("function"):
        return s
    head, _, last = s.rpartition(" ")
    if not head or not _IDENT_RE.match(last) or head in _NAMED_KINDS:
        return s
    if last == "payable":
        return s
    return head


def _canon_label(s: str) -> str:
    s = " ".join(s.split())
    if s.startswith("t_"):
        s = _from_id(s)
    s = _LOCATION_RE.sub("", s)
    s = s.replace("address payable", "address")

    if s.endswith("]"):
        open_idx = _matching_open(s, len(s) - 1, "[", "]")
        if open_idx > 0:
            elem = _canon_label(s[:open_idx])
            length = s[open_idx + 1:-1].strip()
            return f"{elem}[{length}]"

    if s.startswith("mapping(") and s.endswith(")"):
        parts = _split_top_level(s[len("mapping("):-1], "=>")
        if parts:
            key = _canon_label(_drop_parameter_name(parts[0].strip()))
            value = _canon_label(_drop_parameter_name(parts[1].strip()))
            return f"mapping({key} => {value})"

    for kind in _NAMED_KINDS:
        if s.startswith(kind + " "):
            return f"{kind} {s[len(kind) + 1:].strip().split('.')[-1]}"

    if s.startswith("function"):
        s = re.sub(r"\s*\(\s*", " (", s).replace(" )", ")")
        return re.sub(r"\s*,\s*", ", ", s)

    return _ALIASES.get(s, s)


def canonical_type(spelling: str) -> str:
    """
    Return the canonical label of a Solidity storage type.

    >>> canonical_type("t_mapping(t_address,t_uint256)")
    'mapping(address => uint256)'
    >>> canonical_type("mapping(address=>uint)")
    'mapping(address => uint256)'
    """
    return _canon_label(spelling.strip())


# ──────────────────────────────────────────────
# Structure of canonical types
# ──────────────────────────────────────────────
def type_category(canonical: str) -> str:
    if canonical.endswith("[]"):
        return DYNAMIC_ARRAY
    if canonical.endswith("]"):
        return STATIC_ARRAY
    if canonical.startswith("mapping("):
        return MAPPING
    if canonical.startswith("struct "):
        return STRUCT
    if canonical in ("bytes", "string"):
        return BYTES
    return VALUE


def split_mapping(canonical: str) -> Tuple[str, str]:
    parts = _split_top_level(canonical[len("mapping("):-1], " => ")
    if parts is None:
        raise ValueError(f"not a mapping type: {canonical}")
    return parts


def split_array(canonical: str) -> Tuple[str, Optional[int]]:
    open_idx = _matching_open(canonical, len(canonical) - 1, "[", "]")
    if open_idx <= 0:
        raise ValueError(f"not an array type: {canonical}")
    length = canonical[open_idx + 1:-1]
    return canonical[:open_idx], (int(length, 0) if length else None)


def value_width(canonical: str) -> Optional[int]:
    """Byte width of an elementary value type, `None` when it cannot be told from the name."""
    m = re.fullmatch(r"u?int(\d+)", canonical)
    if m:
        return int(m.group(1)) // 8
    m = re.fullmatch(r"bytes(\d+)", canonical)
    if m:
        return int(m.group(1))
    m = re.fullmatch(r"u?fixed(\d+)x\d+", canonical)
    if m:
        return int(m.group(1)) // 8
    if canonical == "bool":
        return 1
    if canonical == "address" or canonical.startswith("contract "):
        return 20
    if canonical.startswith("function"):
        return 24 if " external" in canonical else 8
    return None


def value_family(canonical: str) -> Optional[str]:
    """
    Encoding family of a value type, `None` for user-defined value types.

    Same-width values of different families are encoded differently: mapping
    keys are sign-extended before hashing and ``bytesN`` is left-aligned.
    """
    m = re.fullmatch(r"(u?int|u?fixed|bytes)\d+(?:x\d+)?", canonical)
    if m:
        return m.group(1)
    if canonical == "address" or canonical.startswith("contract "):
        return "address"
    if canonical == "bool" or canonical.startswith("function"):
        return canonical.split(" ")[0]
    if canonical.startswith("enum "):
        return "enum"
    return None


# ──────────────────────────────────────────────
# Compatibility
# ──────────────────────────────────────────────
def is_storage_compatible(a: str, b: str,
                          size_a: Optional[int] = None,
                          size_b: Optional[int] = None) -> bool:
    """
    Tell whether bytes written as type `a` keep their meaning when read as `b`.

    Sizes come from the layout snapshot and are only known for top-level
    variables; nested key/value/element types are judged from their names,
    and a nested type whose width cannot be derived is only compatible with
    an identical spelling.
    """
    if a == b:
        return True
    if size_a is not None and size_b is not None and size_a != size_b:
        return False

    cat = type_category(a)
    if cat != type_category(b):
        return False
    top_level = size_a is not None and size_b is not None

    if cat == VALUE:
        fa, fb = value_family(a), value_family(b)
        if fa is not None and fb is not None and fa != fb:
            return False
        wa, wb = value_width(a), value_width(b)
        if wa is not None and wb is not None:
            return wa == wb
        return top_level
    if cat == BYTES:
        return True
    if cat == MAPPING:
        ka, va = split_mapping(a)
        kb, vb = split_mapping(b)
        return is_storage_compatible(ka, kb) and is_storage_compatible(va, vb)
    if cat in (DYNAMIC_ARRAY, STATIC_ARRAY):
        ea, la = split_array(a)
        eb, lb = split_array(b)
        return la == lb and is_storage_compatible(ea, eb)
    # struct: members are not part of the snapshot, only the footprint is
    return top_level
