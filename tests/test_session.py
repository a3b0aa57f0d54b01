"""Tests for the session command channel."""

import logging

import pytest

from fakes import wait_for
from vaultflow.config import Settings
from vaultflow.errors import ConfigurationError, FlowBusyError, InvalidTransitionError
from vaultflow.orchestrator import Confirming, Done, Input
from vaultflow.session import (
    Acknowledged,
    CancelRequested,
    DepositRequested,
    RetryRequested,
    VaultSession,
    WithdrawRequested,
    build_session,
)


@pytest.fixture
def session(deposit, withdraw, caches, status, watcher, attestation):
    return VaultSession(deposit, withdraw, caches, status, watcher, attestation)


class TestDispatch:
    @pytest.mark.asyncio
    async def test_deposit_then_acknowledge(self, session):
        session.dispatch(DepositRequested("10"))
        await session.deposit.wait()
        assert isinstance(session.deposit.state, Confirming)

        with pytest.raises(FlowBusyError):
            session.dispatch(DepositRequested("5"))

        state = session.dispatch(Acknowledged("deposit"))
        assert isinstance(state, Done)

    def test_invalid_amount_returns_input_with_error(self, session):
        state = session.dispatch(WithdrawRequested("abc"))

        assert isinstance(state, Input)
        assert state.error is not None

    def test_acknowledge_outside_confirming(self, session):
        with pytest.raises(InvalidTransitionError, match="Cannot acknowledge withdraw in state Input"):
            session.dispatch(Acknowledged("withdraw"))

    @pytest.mark.asyncio
    async def test_retry_and_cancel(self, session, gateway):
        gateway.auto_settle = False
        session.dispatch(DepositRequested("10"))
        await wait_for(lambda: session.deposit.active_transaction is not None)

        with pytest.raises(FlowBusyError):
            session.dispatch(RetryRequested("deposit"))

        assert session.dispatch(CancelRequested("deposit")) == Input()
        assert session.dispatch(RetryRequested("deposit")) == Input()
        await session.aclose()

    def test_unknown_flow(self, session):
        with pytest.raises(ValueError):
            session.dispatch(RetryRequested("stake"))

    def test_unknown_command(self, session):
        with pytest.raises(TypeError):
            session.dispatch("deposit")


class TestDescribe:
    @pytest.mark.asyncio
    async def test_snapshot_of_everything(self, session):
        await session.refresh_balances()
        session.dispatch(WithdrawRequested("0"))

        data = session.describe()

        assert data["deposit"] == {"name": "Input"}
        assert data["withdraw"]["error"]["kind"] == "validation"
        assert data["balances"]["asset_balance"] == str(1_000_000 * 10**6)
        assert len(data["status"]) == 1
        assert data["pending_transactions"] == []

    @pytest.mark.asyncio
    async def test_oracle_health(self, session, deposit, withdraw, caches, status, watcher):
        assert await session.oracle_healthy() is True
        bare = VaultSession(deposit, withdraw, caches, status, watcher)
        assert await bare.oracle_healthy() is None


class TestBuildSession:
    def test_unsupported_chain(self):
        with pytest.raises(ConfigurationError, match="Unsupported chain ID"):
            build_session(Settings(_env_file=None, chain_id=1))

    def test_missing_wallet(self):
        with pytest.raises(ConfigurationError, match="Wallet key material"):
            build_session(Settings(_env_file=None, chain_id=31337))

    def test_undeployed_vault(self):
        settings = Settings(_env_file=None, chain_id=421614, wallet_private_key="0x" + "4c" * 32)
        with pytest.raises(ConfigurationError, match="Coming soon"):
            build_session(settings)

    def test_wires_everything(self):
        settings = Settings(
            _env_file=None,
            chain_id=31337,
            wallet_private_key="0x" + "4c" * 32,
            oracle_api_key="key",
        )

        session = build_session(settings)

        assert session.deposit.receiver == session.withdraw.receiver
        assert session.deposit.caches is session.withdraw.caches
        assert session.deposit.status is session.status
        assert session.attestation.api_key == "key"
        assert session.deposit.stall_notice_seconds == 120.0

    def test_warns_without_oracle_key(self, caplog):
        settings = Settings(_env_file=None, chain_id=31337, wallet_private_key="0x" + "4c" * 32)

        with caplog.at_level(logging.WARNING, logger="vaultflow.session"):
            build_session(settings)

        assert "ORACLE_API_KEY is not set" in caplog.text
