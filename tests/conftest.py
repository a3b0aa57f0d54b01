"""Pytest configuration and fixtures."""

import os

import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"
os.environ["CHAIN_ID"] = "31337"

from fakes import (  # noqa: E402
    CHAIN_ID,
    RECEIVER,
    FakeAttestation,
    FakeGateway,
    FakeReader,
    FakeReceiptSource,
)
from vaultflow.caches import BalanceCache  # noqa: E402
from vaultflow.orchestrator import DepositOrchestrator, WithdrawOrchestrator  # noqa: E402
from vaultflow.status import StatusBus  # noqa: E402
from vaultflow.watcher import TransactionWatcher  # noqa: E402


@pytest.fixture
def reader():
    """Chain reads: a funded wallet, nothing approved, no shares."""
    return FakeReader()


@pytest.fixture
def caches(reader):
    return BalanceCache(reader)


@pytest.fixture
def status():
    return StatusBus(capacity=3, ttl_seconds=10.0)


@pytest.fixture
def receipts():
    return FakeReceiptSource()


@pytest.fixture
def watcher(receipts):
    return TransactionWatcher(receipts, poll_interval=0.01)


@pytest.fixture
def gateway(watcher, receipts, reader):
    return FakeGateway(watcher, receipts, reader)


@pytest.fixture
def attestation():
    return FakeAttestation()


@pytest.fixture
def flow_kwargs(status, caches, watcher):
    return dict(
        status=status,
        caches=caches,
        watcher=watcher,
        chain_id=CHAIN_ID,
        receiver=RECEIVER,
        max_amount=10**12,
    )


@pytest.fixture
def deposit(gateway, attestation, flow_kwargs):
    return DepositOrchestrator(gateway, attestation, **flow_kwargs)


@pytest.fixture
def withdraw(gateway, flow_kwargs):
    return WithdrawOrchestrator(gateway, **flow_kwargs)
