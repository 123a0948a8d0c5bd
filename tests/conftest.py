import json

import pytest

VAULT = "src/Vault.sol:Vault"


def entry(label, slot, offset=0, type_="uint256", size=32, contract=VAULT, **extra):
    item = {"label": label, "type": type_, "slot": slot, "offset": offset, "bytes": size,
            "contract": contract}
    item.update(extra)
    return item


@pytest.fixture
def snapshot():
    """Build a raw JSON snapshot from entries."""
    def make(*entries):
        return json.dumps({"storage": list(entries)})
    return make
