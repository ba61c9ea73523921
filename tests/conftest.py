"""Shared fixtures for shielder tests."""

import pytest

from shielder.chain.memory import InMemoryShielderChain, LocalRelayer
from shielder.client import ShielderClient
from shielder.core.prover import CryptoClient, MockProver
from shielder.core.state.registry import AccountRegistry
from shielder.core.storage import StorageManager
from shielder.crypto import SecretManager

CALLER_ADDRESS = "0x" + "11" * 20
RECIPIENT_ADDRESS = "0x" + "22" * 20
RELAYER_ADDRESS = "0x" + "33" * 20
ERC20_ADDRESS = "0x" + "ab" * 20
RELAYER_FEE = 10


@pytest.fixture
def addresses():
    return {
        "caller": CALLER_ADDRESS,
        "recipient": RECIPIENT_ADDRESS,
        "relayer": RELAYER_ADDRESS,
        "erc20": ERC20_ADDRESS,
    }


@pytest.fixture
def seed():
    return bytes(range(32))


@pytest.fixture
def secret_manager(seed):
    return SecretManager(seed)


@pytest.fixture
def prover():
    return MockProver(key=b"\x01" * 32)


@pytest.fixture
def crypto(prover, secret_manager):
    return CryptoClient(prover=prover, secrets=secret_manager)


@pytest.fixture
def chain(prover):
    return InMemoryShielderChain(prover)


@pytest.fixture
def relayer(chain):
    return LocalRelayer(chain, RELAYER_ADDRESS, fee=RELAYER_FEE)


@pytest.fixture
def storage(tmp_path):
    manager = StorageManager(tmp_path / "data")
    yield manager
    manager.close()


@pytest.fixture
def registry(storage, secret_manager):
    return AccountRegistry(storage, secret_manager)


@pytest.fixture
def client(seed, chain, relayer, prover, storage):
    return ShielderClient(seed, chain, relayer, prover, storage)
