import pytest

from storage_check.diff import DIFF_LEVELS, DiffKind, Severity, diff_layouts
from storage_check.errors import LayoutMismatch
from storage_check.model import StorageLayout, StorageVariable


def var(label, slot, offset=0, type_id="uint256", size=32, contract="Vault"):
    return StorageVariable(label, type_id, slot, offset, size, contract)


def layout(*variables, contract="Vault"):
    return StorageLayout(contract, tuple(variables))


def kinds(differences):
    return [(d.kind, d.label) for d in differences]


BASE = layout(
    var("owner", 0, type_id="address", size=20),
    var("paused", 0, offset=20, type_id="bool", size=1),
    var("totalSupply", 1),
    var("balances", 2, type_id="mapping(address => uint256)"),
)


def test_identical_layouts_have_no_differences():
    assert diff_layouts(BASE, BASE) == []


def test_empty_layouts():
    assert diff_layouts(layout(), layout()) == []


def test_diff_is_deterministic():
    after = layout(var("a", 0), var("c", 1), var("b", 2))
    before = layout(var("a", 0), var("b", 1), var("d", 2))
    assert diff_layouts(before, after) == diff_layouts(before, after)


def test_append_only_yields_added():
    after = layout(*BASE.variables, var("fee", 3, type_id="uint16", size=2),
                   var("treasury", 3, offset=2, type_id="address", size=20))

    result = diff_layouts(BASE, after)

    assert kinds(result) == [(DiffKind.ADDED, "fee"), (DiffKind.ADDED, "treasury")]
    assert result[0].before is None
    assert result[0].after.slot == 3


def test_type_narrowing_is_unsafe():
    before = layout(var("x", 0, type_id="uint256", size=32))
    after = layout(var("x", 0, type_id="uint128", size=16))

    result = diff_layouts(before, after)

    assert kinds(result) == [(DiffKind.UNSAFE_TYPE_CHANGE, "x")]
    assert result[0].before.type_id == "uint256"
    assert result[0].after.type_id == "uint128"


def test_compatible_type_change_is_a_warning():
    before = layout(var("token", 0, type_id="address", size=20))
    after = layout(var("token", 0, type_id="contract IERC20", size=20))

    assert kinds(diff_layouts(before, after)) == [(DiffKind.TYPE_CHANGE_WARNING, "token")]


def test_sign_change_is_unsafe():
    before = layout(var("x", 0, type_id="uint256"))
    after = layout(var("x", 0, type_id="int256"))

    assert kinds(diff_layouts(before, after)) == [(DiffKind.UNSAFE_TYPE_CHANGE, "x")]


def test_signed_mapping_key_becoming_unsigned_is_unsafe():
    before = layout(var("x", 0, type_id="mapping(int64 => uint256)"))
    after = layout(var("x", 0, type_id="mapping(uint64 => uint256)"))

    assert kinds(diff_layouts(before, after)) == [(DiffKind.UNSAFE_TYPE_CHANGE, "x")]


def test_value_to_reference_is_unsafe():
    before = layout(var("x", 0, type_id="uint256"))
    after = layout(var("x", 0, type_id="uint256[]"))

    assert kinds(diff_layouts(before, after)) == [(DiffKind.UNSAFE_TYPE_CHANGE, "x")]


def test_same_type_with_new_footprint_is_unsafe():
    before = layout(var("pool", 0, type_id="struct Pool", size=64), var("after", 2))
    after = layout(var("pool", 0, type_id="struct Pool", size=96), var("after", 3))

    assert kinds(diff_layouts(before, after)) == [
        (DiffKind.UNSAFE_TYPE_CHANGE, "pool"),
        (DiffKind.POSITION_SHIFT, "after"),
    ]


def test_mid_layout_insertion_shifts_following_variables():
    before = layout(var("a", 0), var("b", 1))
    after = layout(var("a", 0), var("c", 1), var("b", 2))

    result = diff_layouts(before, after)

    assert kinds(result) == [(DiffKind.ADDED, "c"), (DiffKind.POSITION_SHIFT, "b")]
    shift = result[1]
    assert (shift.before.slot, shift.after.slot) == (1, 2)


def test_packed_insertion_shifts_by_offset():
    before = layout(var("a", 0, type_id="uint128", size=16),
                    var("b", 0, offset=16, type_id="uint128", size=16))
    after = layout(var("a", 0, type_id="uint128", size=16),
                   var("x", 0, offset=16, type_id="uint64", size=8),
                   var("b", 1, type_id="uint128", size=16))

    assert kinds(diff_layouts(before, after)) == [
        (DiffKind.ADDED, "x"),
        (DiffKind.POSITION_SHIFT, "b"),
    ]


def test_offset_only_move_is_a_shift():
    before = layout(var("a", 0, type_id="uint8", size=1), var("b", 0, offset=1, type_id="uint8", size=1))
    after = layout(var("b", 0, type_id="uint8", size=1), var("a", 0, offset=1, type_id="uint8", size=1))

    assert kinds(diff_layouts(before, after)) == [
        (DiffKind.POSITION_SHIFT, "b"),
        (DiffKind.POSITION_SHIFT, "a"),
    ]


def test_type_change_and_shift_are_both_reported():
    before = layout(var("a", 0), var("x", 1, type_id="uint256"))
    after = layout(var("x", 0, type_id="bytes"))

    assert kinds(diff_layouts(before, after)) == [
        (DiffKind.UNSAFE_TYPE_CHANGE, "x"),
        (DiffKind.POSITION_SHIFT, "x"),
        (DiffKind.REMOVED, "a"),
    ]


def test_removal_without_replacement():
    before = layout(var("a", 0), var("b", 1))
    after = layout(var("a", 0))

    result = diff_layouts(before, after)

    assert kinds(result) == [(DiffKind.REMOVED, "b")]
    assert result[0].after is None


def test_replacement_is_not_merged_into_a_rename():
    before = layout(var("a", 0), var("b", 1))
    after = layout(var("a", 0), var("c", 1))

    assert kinds(diff_layouts(before, after)) == [(DiffKind.ADDED, "c"), (DiffKind.REMOVED, "b")]


def test_removed_entries_follow_in_before_order():
    before = layout(var("r1", 0), var("a", 1), var("r2", 2), var("b", 3))
    after = layout(var("n", 0), var("a", 1), var("b", 3))

    assert kinds(diff_layouts(before, after)) == [
        (DiffKind.ADDED, "n"),
        (DiffKind.REMOVED, "r1"),
        (DiffKind.REMOVED, "r2"),
    ]


def test_presence_is_symmetric():
    before = layout(var("a", 0), var("gone", 1))
    after = layout(var("a", 0), var("gone_too", 2), var("new", 3))

    result = diff_layouts(before, after)

    for label, kind in (("new", DiffKind.ADDED), ("gone", DiffKind.REMOVED)):
        assert [d.kind for d in result if d.label == label] == [kind]


def test_duplicate_labels_match_within_their_contract():
    before = layout(var("_status", 0, contract="Base"), var("_status", 1, contract="Vault"))
    assert diff_layouts(before, before) == []

    after = layout(var("_status", 0, contract="Base"))
    result = diff_layouts(before, after)

    assert kinds(result) == [(DiffKind.REMOVED, "_status")]
    assert result[0].before.slot == 1


def test_removing_the_base_copy_of_a_duplicated_label():
    before = layout(var("_status", 0, contract="src/Base.sol:Base"),
                    var("_status", 1, contract="src/Vault.sol:Vault"))
    after = layout(var("_status", 0, contract="src/Vault.sol:Vault"))

    result = diff_layouts(before, after)

    assert kinds(result) == [(DiffKind.POSITION_SHIFT, "_status"), (DiffKind.REMOVED, "_status")]
    shift, removed = result
    assert (shift.before.slot, shift.after.slot) == (1, 0)
    assert removed.before.contract == "src/Base.sol:Base"


def test_moved_source_file_keeps_variables_matched():
    before = layout(var("owner", 0, contract="src/Base.sol:Base"))
    after = layout(var("owner", 0, contract="src/access/Base.sol:Base"))

    assert diff_layouts(before, after) == []


def test_undeclared_duplicates_match_by_occurrence():
    before = layout(var("_status", 0, contract=None), var("_status", 1, contract=None))
    after = layout(var("_status", 0, contract=None))

    result = diff_layouts(before, after)

    assert kinds(result) == [(DiffKind.REMOVED, "_status")]
    assert result[0].before.slot == 1


def test_different_contracts_cannot_be_compared():
    with pytest.raises(LayoutMismatch) as exc_info:
        diff_layouts(layout(contract="src/A.sol:A"), layout(contract="src/B.sol:B"))
    assert exc_info.value.before == "src/A.sol:A"
    assert exc_info.value.after == "src/B.sol:B"


def test_unnamed_layout_is_comparable():
    unnamed = StorageLayout(None, BASE.variables)
    assert diff_layouts(unnamed, BASE) == []


@pytest.mark.parametrize("kind, severity", [
    (DiffKind.UNSAFE_TYPE_CHANGE, Severity.ERROR),
    (DiffKind.POSITION_SHIFT, Severity.ERROR),
    (DiffKind.REMOVED, Severity.ERROR),
    (DiffKind.ADDED, Severity.WARNING),
    (DiffKind.TYPE_CHANGE_WARNING, Severity.WARNING),
])
def test_severity_levels(kind, severity):
    assert DIFF_LEVELS[kind] is severity
