"""Tests for the vault gateway and reader."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from web3 import AsyncHTTPProvider, AsyncWeb3

from fakes import CHAIN_ID, RECEIVER, SIGNATURE, VAULT, FakeReceiptSource
from vaultflow.amounts import MAX_UINT256
from vaultflow.attestation import BalanceSnapshot
from vaultflow.errors import ChainRejected, ConfigurationError, InsufficientFunds, UserRejected
from vaultflow.reader import VaultReader
from vaultflow.vault import VaultGateway
from vaultflow.watcher import TransactionWatcher

TX_HASH = "0x" + "ef" * 32


class StubWallet:
    address = RECEIVER

    def __init__(self, error=None):
        self.error = error
        self.sent: list[dict] = []

    async def send_transaction(self, tx_params):
        if self.error is not None:
            raise self.error
        self.sent.append(tx_params)
        return TX_HASH


@pytest.fixture
def w3():
    # Never contacted: contract calls are intercepted below
    return AsyncWeb3(AsyncHTTPProvider("http://127.0.0.1:1"))


@pytest.fixture
def watcher():
    return TransactionWatcher(FakeReceiptSource(), poll_interval=0.01)


@pytest.fixture
async def gateway(w3, watcher):
    gateway = VaultGateway(CHAIN_ID, w3, StubWallet(), watcher)
    yield gateway
    await watcher.aclose()


@pytest.fixture
def submitted(gateway, monkeypatch):
    """Capture contract calls instead of sending them."""
    calls = []

    async def fake_transact(contract_fn, label):
        calls.append((contract_fn.fn_name, tuple(contract_fn.args), label))
        return gateway.watcher.track(CHAIN_ID, TX_HASH)

    monkeypatch.setattr(gateway, "_transact", fake_transact)
    return calls


class TestGatewayCalls:
    @pytest.mark.asyncio
    async def test_approve_defaults_to_max_for_vault(self, gateway, submitted):
        handle = await gateway.approve()

        assert submitted == [("approve", (VAULT, MAX_UINT256), "Approval")]
        assert handle.tx_hash == TX_HASH

    @pytest.mark.asyncio
    async def test_plain_deposit(self, gateway, submitted):
        await gateway.deposit_plain(5_000_000, RECEIVER.lower())

        assert submitted == [("deposit", (5_000_000, RECEIVER), "Deposit")]

    @pytest.mark.asyncio
    async def test_attested_deposit_passes_snapshot_through(self, gateway, submitted):
        snapshot = BalanceSnapshot(
            balance=7,
            nonce=3,
            deadline=4102444800,
            assets=5_000_000,
            receiver=RECEIVER.lower(),
            signature=SIGNATURE,
        )

        await gateway.deposit_with_attestation(5_000_000, RECEIVER, snapshot)

        name, args, _ = submitted[0]
        assert name == "depositWithExtraInfoViaSignature"
        assert args[0] == 5_000_000
        assert args[1] == RECEIVER
        assert tuple(args[2]) == (7, 3, 4102444800, 5_000_000, RECEIVER)
        assert args[3] == bytes.fromhex("ab" * 65)

    @pytest.mark.asyncio
    async def test_withdraw(self, gateway, submitted):
        await gateway.withdraw(10, RECEIVER, RECEIVER)

        assert submitted == [("withdraw", (10, RECEIVER, RECEIVER), "Withdrawal")]


class TestTransact:
    @staticmethod
    def contract_fn(error=None):
        fn = MagicMock()
        if error is not None:
            fn.build_transaction = AsyncMock(side_effect=error)
        else:
            fn.build_transaction = AsyncMock(return_value={"to": VAULT, "data": "0x"})
        return fn

    @pytest.mark.asyncio
    async def test_submits_and_tracks(self, gateway, watcher):
        handle = await gateway._transact(self.contract_fn(), "Deposit")

        assert handle.tx_hash == TX_HASH
        assert watcher.get(TX_HASH) is handle
        assert gateway.wallet.sent == [{"to": VAULT, "data": "0x"}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raised,expected",
        [
            (Exception("User denied transaction signature"), UserRejected),
            (ValueError("insufficient funds for gas"), InsufficientFunds),
            (ValueError("execution reverted: ERC20: transfer amount exceeds allowance"), ChainRejected),
        ],
    )
    async def test_errors_are_classified(self, gateway, raised, expected):
        with pytest.raises(expected):
            await gateway._transact(self.contract_fn(raised), "Deposit")

    @pytest.mark.asyncio
    async def test_wallet_error_is_classified(self, w3, watcher):
        wallet = StubWallet(error=Exception("User rejected the request."))
        gateway = VaultGateway(CHAIN_ID, w3, wallet, watcher)

        with pytest.raises(UserRejected):
            await gateway._transact(self.contract_fn(), "Approval")
        assert watcher.pending() == []


class TestConstruction:
    def test_undeployed_vault(self, w3, watcher):
        with pytest.raises(ConfigurationError, match="Coming soon"):
            VaultGateway(421614, w3, StubWallet(), watcher)

    def test_reader_unsupported_chain(self, w3):
        with pytest.raises(ConfigurationError):
            VaultReader(w3, 1, RECEIVER)

    def test_reader_targets_vault(self, w3):
        reader = VaultReader(w3, CHAIN_ID, RECEIVER.lower())

        assert reader.owner == RECEIVER
        assert reader.vault.address == VAULT
