"""Tests for failure classification, chain lookups and settings."""

import pytest

from vaultflow.chains import (
    SUPPORTED_CHAINS,
    get_asset_address,
    get_chain,
    get_explorer_tx_url,
    get_vault_address,
    is_supported,
)
from vaultflow.config import Settings
from vaultflow.errors import (
    AttestationFailure,
    ChainRejected,
    ConfigurationError,
    ErrorKind,
    InsufficientFunds,
    UserRejected,
    ValidationError,
    WalletRejectedError,
    classify_error,
)


class ProviderError(Exception):
    """Shaped like an EIP-1193 provider error."""

    def __init__(self, message, code):
        super().__init__(message)
        self.code = code


class TestClassifyError:
    """Wallet and chain exceptions mapped onto the taxonomy."""

    @pytest.mark.parametrize(
        "exc",
        [
            WalletRejectedError(),
            ProviderError("whatever", 4001),
            Exception("User rejected the request."),
            Exception("MetaMask Tx Signature: User denied transaction signature."),
            type("UserRejectedRequestError", (Exception,), {})("boom"),
        ],
    )
    def test_user_rejection(self, exc):
        error = classify_error(exc)
        assert isinstance(error, UserRejected)
        assert error.kind == ErrorKind.USER_REJECTED
        assert error.recoverable

    @pytest.mark.parametrize(
        "message",
        ["transaction rejected by node: replacement fee too low", "permission denied"],
    )
    def test_node_side_refusal_is_not_user_rejection(self, message):
        error = classify_error(Exception(message))
        assert isinstance(error, ChainRejected)
        assert error.needs_refresh

    def test_insufficient_funds(self):
        error = classify_error(ValueError("insufficient funds for gas * price + value"))
        assert isinstance(error, InsufficientFunds)

    def test_revert_is_chain_rejection(self):
        error = classify_error(Exception("execution reverted: ERC4626: deposit more than max"), "0xfeed")
        assert isinstance(error, ChainRejected)
        assert error.needs_refresh
        assert error.tx_hash == "0xfeed"
        assert "deposit more than max" in error.message

    def test_classified_errors_pass_through(self):
        original = AttestationFailure("oracle down")
        assert classify_error(original) is original

        with_hash = classify_error(ChainRejected("reverted"), tx_hash="0x1")
        assert with_hash.tx_hash == "0x1"

    def test_configuration_is_not_recoverable(self):
        assert ConfigurationError("x").recoverable is False
        assert ValidationError("x").recoverable is True

    def test_to_dict(self):
        data = ChainRejected("reverted", tx_hash="0x1").to_dict()
        assert data == {
            "kind": "chain_rejected",
            "message": "reverted",
            "recoverable": True,
            "tx_hash": "0x1",
        }


class TestChains:
    """Fixed allow-list of networks."""

    def test_supported_ids(self):
        assert set(SUPPORTED_CHAINS) == {31337, 84532, 421614, 11155420}
        assert is_supported(84532)
        assert not is_supported(1)
        assert not is_supported(None)

    def test_base_sepolia_addresses(self):
        assert get_vault_address(84532) == "0xDEAfA3ba09ffF027F0dA4c8Ba79C238A547aeBd3"
        assert get_asset_address(84532) == "0x036CbD53842c5426634e7929541eC2318f3dCF7e"

    def test_unknown_chain_is_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Unsupported chain ID: 1"):
            get_chain(1)
        with pytest.raises(ConfigurationError):
            get_vault_address(137)

    @pytest.mark.parametrize("chain_id", [421614, 11155420])
    def test_vault_not_deployed(self, chain_id):
        assert get_asset_address(chain_id)
        with pytest.raises(ConfigurationError, match="Coming soon"):
            get_vault_address(chain_id)

    def test_explorer_links(self):
        assert get_explorer_tx_url(84532, "0xabc") == "https://sepolia.basescan.org/tx/0xabc"
        assert get_explorer_tx_url(31337, "0xabc") is None
        assert get_explorer_tx_url(None, "0xabc") is None


class TestSettings:
    """Settings from the environment."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("CHAIN_ID", raising=False)
        settings = Settings(_env_file=None)

        assert settings.chain_id == 84532
        assert settings.asset_decimals == 6
        assert settings.status_capacity == 3
        assert settings.status_ttl_seconds == 10.0
        assert settings.max_amount == 10**12
        assert not settings.has_oracle_credentials

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("CHAIN_ID", "31337")
        monkeypatch.setenv("ORACLE_API_KEY", "secret")
        settings = Settings(_env_file=None)

        assert settings.chain_id == 31337
        assert settings.get_rpc_url(31337) == "http://127.0.0.1:8545"
        assert settings.has_oracle_credentials

    def test_safe_dict_redacts_secrets(self):
        settings = Settings(
            _env_file=None,
            oracle_api_key="secret",
            wallet_private_key="0x" + "11" * 32,
        )

        data = settings.get_safe_dict()
        assert data["oracle"]["api_key"] == "***"
        assert data["wallet_configured"] is True
        assert "secret" not in str(data)
        assert "11" * 32 not in str(data)

    def test_seed_phrase_needs_twelve_words(self):
        assert not Settings(_env_file=None, wallet_seed_phrase="too short").has_wallet
        assert Settings(_env_file=None, wallet_seed_phrase=" ".join(["word"] * 12)).has_wallet

    def test_unknown_chain_has_no_rpc(self):
        assert Settings(_env_file=None).get_rpc_url(1) == ""
