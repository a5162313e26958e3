from __future__ import annotations

import textwrap
from typing import Any, Callable, Dict, Optional

import pytest

from stampvm.config import VMConfig, load_config
from stampvm.runtime.executor import ExecutionResult, Executor
from stampvm.runtime.storage_api import MemoryStore

# --- shared contract sources -------------------------------------------------

TOKEN_SRC = textwrap.dedent(
    '''
    """Minimal fungible token used across the runtime tests."""
    balances = Hash(default_value=0)
    owner = Variable()
    supply = Variable(default_value=0)

    Transfer = LogEvent('Transfer', {
        'sender': {'type': str, 'idx': True},
        'to': {'type': str, 'idx': True},
        'amount': {'type': int},
    })

    @construct
    def seed(amount: int):
        owner.set(ctx.signer)
        balances[ctx.signer] = amount
        supply.set(amount)

    @export
    def transfer(amount: int, to: str):
        sender = ctx.caller
        assert amount > 0, 'amount must be positive'
        assert balances[sender] >= amount, 'insufficient balance'
        balances[sender] -= amount
        balances[to] += amount
        Transfer({'sender': sender, 'to': to, 'amount': amount})

    @export
    def balance_of(account: str):
        return balances[account]

    @export
    def reseed(amount: int):
        seed(amount)
    '''
)


def dedent(src: str) -> str:
    return textwrap.dedent(src).lstrip("\n")


# --- fixtures -----------------------------------------------------------------


@pytest.fixture()
def config() -> VMConfig:
    return load_config()


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def executor(store: MemoryStore, config: VMConfig) -> Executor:
    return Executor(store=store, config=config)


@pytest.fixture()
def deploy(executor: Executor) -> Callable[..., ExecutionResult]:
    """Deploy helper that fails the test when the deployment does not succeed."""

    def _deploy(
        name: str,
        source: str,
        *,
        signer: str = "alice",
        constructor_args: Optional[Dict[str, Any]] = None,
    ) -> ExecutionResult:
        res = executor.deploy(name, dedent(source), signer=signer, constructor_args=constructor_args)
        assert res.ok, f"deploy of {name} failed: {res.error}"
        return res

    return _deploy


@pytest.fixture()
def token(deploy: Callable[..., ExecutionResult]) -> ExecutionResult:
    return deploy("token", TOKEN_SRC, constructor_args={"amount": 100})
