from __future__ import annotations

import pytest

from credits_ledger.store import StoreError, load_script


@pytest.mark.parametrize("name", ["initialize", "deduct", "add", "rebuild"])
def test_packaged_scripts_load(name: str) -> None:
    script = load_script(name)
    assert script.version == 1
    assert script.resource_name == f"{name}.v1.lua"
    assert "KEYS[1]" in script.source
    assert "return" in script.source


def test_mutation_scripts_append_to_the_log() -> None:
    for name in ("initialize", "deduct", "add"):
        assert "ZADD" in load_script(name).source.upper()
    assert "ZADD" not in load_script("rebuild").source.upper()


def test_unknown_script_is_a_store_error() -> None:
    with pytest.raises(StoreError):
        load_script("transfer")
    with pytest.raises(StoreError):
        load_script("deduct", version=99)
