import pytest

from storage_check.errors import UnparsableSource
from storage_check.source import SourceRange, index_source, index_source_file

VAULT_SOURCE = "\n".join([
    "// SPDX-License-Identifier: MIT",                                   # 1
    "pragma solidity ^0.8.20;",                                          # 2
    "",                                                                  # 3
    'import {IERC20} from "./IERC20.sol";',                              # 4
    "",                                                                  # 5
    "struct Position { uint256 amount; }",                               # 6
    "",                                                                  # 7
    "abstract contract Base {",                                          # 8
    "    address internal owner;",                                       # 9
    "}",                                                                 # 10
    "",                                                                  # 11
    'contract Vault is Base, Named("vault") {',                          # 12
    "    uint256 public constant FEE = 10;",                             # 13
    "    address public immutable token;",                               # 14
    "    uint256 public totalSupply;",                                   # 15
    "    mapping(address => uint256) private balances;",                 # 16
    "    function (uint256) internal pure returns (uint256) hook;",      # 17
    "    uint256[] public history = [1, 2];",                            # 18
    "    /* uint256 commented; */",                                      # 19
    "    string public name = \"a } string\";",                          # 20
    "",                                                                  # 21
    "    event Deposit(address indexed who, uint256 amount);",           # 22
    "    error Unauthorized();",                                         # 23
    "    struct Pool { uint128 a; uint128 b; }",                         # 24
    "    enum Status { Open, Closed }",                                  # 25
    "    using SafeMath for uint256;",                                   # 26
    "",                                                                  # 27
    "    modifier onlyOwner() { require(msg.sender == owner); _; }",     # 28
    "",                                                                  # 29
    "    constructor() { uint256 local = 1; totalSupply = local; }",     # 30
    "",                                                                  # 31
    "    function deposit(uint256 amount) external {",                   # 32
    "        uint256 shares = amount;",                                  # 33
    "        balances[msg.sender] += shares;",                           # 34
    "    }",                                                             # 35
    "",                                                                  # 36
    "    Position internal position;",                                   # 37
    "}",                                                                 # 38
])


def test_indexes_state_variables():
    index = index_source(VAULT_SOURCE, "src/Vault.sol")

    bare = {k for k in index.declarations if "." not in k}
    assert bare == {"owner", "totalSupply", "balances", "hook", "history", "name", "position"}
    assert index.warnings == ()


def test_skips_constants_immutables_and_locals():
    index = index_source(VAULT_SOURCE, "src/Vault.sol")

    for label in ("FEE", "token", "local", "shares", "amount", "commented", "a", "Open"):
        assert index.lookup(label) is None


def test_declaration_range():
    index = index_source(VAULT_SOURCE, "src/Vault.sol")

    decl = index.lookup("totalSupply")
    assert decl.source_path == "src/Vault.sol"
    assert decl.contract == "Vault"
    # "    uint256 public totalSupply;" -> columns 5..31, end points past ';'
    assert decl.range == SourceRange(15, 5, 15, 32)


def test_qualified_lookup():
    index = index_source(VAULT_SOURCE, "src/Vault.sol")

    assert index.lookup("owner").contract == "Base"
    assert index.lookup("owner", "src/Vault.sol:Base").range.start_line == 9
    assert index.lookup("history", "Vault").range.start_line == 18


def test_same_label_in_two_contracts():
    source = "contract A {\n    uint256 value;\n}\ncontract B {\n    uint256 value;\n}\n"
    index = index_source(source, "src/AB.sol")

    assert index.lookup("value").contract == "A"
    assert index.lookup("value", "src/AB.sol:B").range.start_line == 5
    assert index.lookup("value", "src/AB.sol:C").contract == "A"


def test_broken_function_body_is_tolerated():
    source = "\n".join([
        "contract A {",
        "    uint256 a;",
        "    function f() external {",
        "        uint x = (1;",
        "    }",
        "    uint256 b;",
        "}",
    ])
    index = index_source(source)

    assert index.lookup("a") is not None
    assert index.lookup("b").range.start_line == 6


def test_unrecognized_member_produces_a_warning():
    source = "contract A {\n    uint256 a;\n    garbage here { }\n    uint256 b;\n}\n"
    index = index_source(source)

    assert index.lookup("a") is not None
    assert index.lookup("b") is not None
    assert any("unrecognized member" in w for w in index.warnings)


def test_unclosed_contract_keeps_partial_index():
    source = "contract A {\n    uint256 a;\n    function f() external {\n"
    index = index_source(source)

    assert index.lookup("a") is not None
    assert any("not closed" in w for w in index.warnings)


def test_source_without_contracts():
    index = index_source("pragma solidity ^0.8.0;\n")
    assert index.declarations == {}
    assert index.warnings == ("no state variable declarations found",)


@pytest.mark.parametrize("text, message", [
    ("contract A {\n    uint256 a;\n/* never closed", "unterminated block comment"),
    ('contract A {\n    string s = "abc;\n}', "unterminated string literal"),
    ("", "no tokens"),
    ("   \n// only a comment\n", "no tokens"),
])
def test_unparsable_source(text, message):
    with pytest.raises(UnparsableSource, match=message):
        index_source(text, "src/A.sol")


def test_unparsable_source_reports_line():
    with pytest.raises(UnparsableSource) as exc_info:
        index_source("contract A {\n    uint256 a;\n/* never closed", "src/A.sol")
    assert exc_info.value.line == 3
    assert exc_info.value.path == "src/A.sol"


def test_file_location_spans_the_file():
    index = index_source(VAULT_SOURCE, "src/Vault.sol")
    whole = index.file_location()

    assert whole.source_path == "src/Vault.sol"
    assert whole.range == SourceRange(1, 1, 38, 1)


def test_index_source_file(tmp_path):
    path = tmp_path / "Token.sol"
    path.write_text("contract Token {\n    uint256 supply;\n}\n", encoding="utf-8")

    index = index_source_file(path)

    assert index.path == str(path)
    assert index.lookup("supply").range.start_line == 2


def test_index_missing_file(tmp_path):
    with pytest.raises(UnparsableSource, match="cannot read source"):
        index_source_file(tmp_path / "Missing.sol")
