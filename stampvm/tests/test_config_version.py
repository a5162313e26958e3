from __future__ import annotations

import importlib
import re

import pytest

import stampvm
from stampvm import config as config_mod
from stampvm.errors import (
    AssertionFailure,
    CompileError,
    ResolutionError,
    StampsExhausted,
    Violation,
    VmError,
    error_to_result_fields,
)
from stampvm.runtime.registry import ContractRegistry, is_valid_name, validate_name
from stampvm.compiler.contract import compile_contract

# `stampvm.version` is shadowed by the public version() function on the package.
version_mod = importlib.import_module("stampvm.version")

# --- config ------------------------------------------------------------------


@pytest.fixture()
def fresh_config(monkeypatch):
    config_mod.load_config.cache_clear()
    yield monkeypatch
    config_mod.load_config.cache_clear()


def test_defaults(fresh_config):
    for var in ("STAMPVM_MAX_CALL_DEPTH", "STAMPVM_WRITE_COST_PER_BYTE"):
        fresh_config.delenv(var, raising=False)
    cfg = config_mod.load_config()
    assert cfg.max_call_depth == 1024
    assert cfg.max_key_bytes == 1024
    assert cfg.max_hash_dimensions == 16
    assert cfg.max_indexed_params == 3
    assert cfg.write_cost_per_byte == 25


def test_env_overrides_are_clamped(fresh_config):
    fresh_config.setenv("STAMPVM_MAX_CALL_DEPTH", "5000")
    fresh_config.setenv("STAMPVM_CALL_COST", "0x20")
    fresh_config.setenv("STAMPVM_LOOP_COST", "not-a-number")
    cfg = config_mod.load_config()
    assert cfg.max_call_depth == 1024
    assert cfg.call_cost == 32
    assert cfg.loop_cost == 1


def test_with_overrides_returns_a_copy(config):
    small = config.with_overrides(max_call_depth=8)
    assert small.max_call_depth == 8
    assert config.max_call_depth == 1024
    assert small.as_dict()["max_call_depth"] == 8
    assert set(small.as_dict()) == set(config.as_dict())


def test_arithmetic_settings_are_not_configurable(config):
    fields = config.as_dict()
    for name in ("decimal_precision", "decimal_places", "max_int_bits", "strict_mode"):
        assert name not in fields
        with pytest.raises(TypeError):
            config.with_overrides(**{name: 8})


# --- version -------------------------------------------------------------------


def test_version_is_exposed():
    assert stampvm.version() == stampvm.__version__
    assert re.match(r"^\d+\.\d+\.\d+", stampvm.__version__)


def test_version_env_override(monkeypatch):
    monkeypatch.setenv("STAMPVM_VERSION", "9.9.9")
    version_mod.compute_version.cache_clear()
    try:
        assert version_mod.compute_version() == "9.9.9"
    finally:
        version_mod.compute_version.cache_clear()


def test_version_falls_back_to_base(monkeypatch):
    monkeypatch.delenv("STAMPVM_VERSION", raising=False)
    monkeypatch.setattr(version_mod, "_pkg_metadata_version", lambda dist_name="stampvm": None)
    version_mod.compute_version.cache_clear()
    try:
        assert version_mod.compute_version() == version_mod.BASE_VERSION
    finally:
        version_mod.compute_version.cache_clear()


# --- errors --------------------------------------------------------------------


def test_error_envelopes():
    assert error_to_result_fields(StampsExhausted("x"))["status"] == "OUT_OF_STAMPS"
    assert error_to_result_fields(AssertionFailure("x"))["status"] == "ASSERTION"
    assert error_to_result_fields(CompileError([]))["status"] == "REJECTED"
    fields = error_to_result_fields(ResolutionError("gone", context={"name": "x"}))
    assert fields == {
        "status": "ERROR",
        "error": {"code": "resolution_error", "message": "gone", "context": {"name": "x"}},
    }


def test_compile_error_summary():
    violations = [Violation(rule="import", message=f"m{i}", lineno=i) for i in range(7)]
    err = CompileError(violations, contract="c")
    assert err.rules == ["import"] * 7
    assert "(2 more)" in err.message
    assert str(violations[0]) == "[import] line 0: m0"
    assert str(VmError("plain")) == "vm_error: plain"


# --- registry --------------------------------------------------------------------


@pytest.mark.parametrize("name", ["token", "a1", "dex_v2", "0x"])
def test_valid_names(name):
    assert validate_name(name) == name
    assert is_valid_name(name)


@pytest.mark.parametrize("name", ["", "Token", "_hidden", "has space", "a.b", "x" * 65, 5])
def test_invalid_names(name):
    assert not is_valid_name(name)
    with pytest.raises(ResolutionError):
        validate_name(name)


def test_registry_lifecycle():
    reg = ContractRegistry()
    compiled = compile_contract("noop", "@export\ndef f():\n    return 1\n")
    reg.register(compiled)
    assert "noop" in reg and len(reg) == 1
    assert reg.resolve("noop") is compiled
    with pytest.raises(ResolutionError) as ei:
        reg.register(compiled)
    assert ei.value.code == "contract_exists"
    assert reg.names() == ["noop"]
    assert reg.remove("noop") is compiled
    assert reg.get("noop") is None
    with pytest.raises(ResolutionError):
        reg.resolve("noop")
