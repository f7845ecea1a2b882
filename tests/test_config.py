"""
Tests for tron_multicall.config.

Covers network presets, environment overrides and helper functions:
- NetworkConfig presets (TRON_MAINNET, TRON_SHASTA, TRON_NILE, LOCAL_DEV)
- get_network_config(), load_network_config()
- resolve_multicall_address(), build_web3()
"""

import pytest
from unittest.mock import patch

from web3 import Web3

from tron_multicall.config import (
    # Network presets
    LOCAL_DEV,
    NETWORKS,
    TRON_MAINNET,
    TRON_NILE,
    TRON_SHASTA,
    # Default settings
    DEFAULT_FEE_LIMIT,
    DEFAULT_NETWORK,
    ENV_ADDRESS,
    ENV_NETWORK,
    ENV_RPC_URL,
    # Helper functions
    build_web3,
    get_network_config,
    load_network_config,
    resolve_multicall_address,
)
from tron_multicall.errors import InvalidTargetError


MULTICALL_ADDRESS = "0xcA11bde05977b3631167028862bE2a173976CA11"


# ============================================================
# Presets
# ============================================================

class TestPresets:
    """Пресеты сетей."""

    def test_chain_ids(self):
        assert TRON_MAINNET.chain_id == 728126428
        assert TRON_SHASTA.chain_id == 2494104990
        assert TRON_NILE.chain_id == 3448148188

    def test_jsonrpc_endpoints(self):
        for cfg in (TRON_MAINNET, TRON_SHASTA, TRON_NILE, LOCAL_DEV):
            assert cfg.rpc_url.endswith("/jsonrpc")

    def test_registry(self):
        assert set(NETWORKS) == {"mainnet", "shasta", "nile", "development"}
        assert NETWORKS[DEFAULT_NETWORK] is LOCAL_DEV

    def test_no_default_multicall(self):
        assert all(cfg.multicall == "" for cfg in NETWORKS.values())

    def test_default_fee_limit(self):
        assert DEFAULT_FEE_LIMIT == 1_000_000_000


# ============================================================
# get_network_config / load_network_config
# ============================================================

class TestGetNetworkConfig:

    def test_by_name(self):
        assert get_network_config("nile") is TRON_NILE

    def test_case_insensitive(self):
        assert get_network_config("MainNet") is TRON_MAINNET

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown network"):
            get_network_config("ropsten")


class TestLoadNetworkConfig:
    """Конфигурация из окружения."""

    def test_default_network(self):
        assert load_network_config({}) == LOCAL_DEV

    def test_network_selected(self):
        assert load_network_config({ENV_NETWORK: "shasta"}).chain_id == TRON_SHASTA.chain_id

    def test_overrides(self):
        cfg = load_network_config({
            ENV_NETWORK: "nile",
            ENV_RPC_URL: "http://localhost:8545",
            ENV_ADDRESS: MULTICALL_ADDRESS,
        })

        assert cfg.name == "nile"
        assert cfg.rpc_url == "http://localhost:8545"
        assert cfg.multicall == MULTICALL_ADDRESS

    def test_preset_not_mutated(self):
        cfg = load_network_config({ENV_NETWORK: "nile", ENV_RPC_URL: "http://localhost:8545"})
        cfg.multicall = MULTICALL_ADDRESS

        assert cfg is not TRON_NILE
        assert TRON_NILE.rpc_url == "https://nile.trongrid.io/jsonrpc"
        assert TRON_NILE.multicall == ""

    def test_empty_values_ignored(self):
        cfg = load_network_config({ENV_NETWORK: "", ENV_RPC_URL: ""})
        assert cfg == LOCAL_DEV

    def test_unknown_network(self):
        with pytest.raises(ValueError):
            load_network_config({ENV_NETWORK: "ropsten"})

    @patch("tron_multicall.config.load_dotenv")
    def test_reads_process_environment(self, mock_load_dotenv):
        with patch.dict("os.environ", {ENV_NETWORK: "mainnet", ENV_ADDRESS: MULTICALL_ADDRESS}):
            cfg = load_network_config()

        mock_load_dotenv.assert_called_once()
        assert cfg.name == "mainnet"
        assert cfg.multicall == MULTICALL_ADDRESS


# ============================================================
# resolve_multicall_address / build_web3
# ============================================================

class TestResolveMulticallAddress:

    def test_from_config(self):
        cfg = load_network_config({ENV_ADDRESS: MULTICALL_ADDRESS.lower()})
        assert resolve_multicall_address(cfg) == MULTICALL_ADDRESS

    def test_override_wins(self):
        cfg = load_network_config({ENV_ADDRESS: "0x1111111111111111111111111111111111111111"})
        assert resolve_multicall_address(cfg, MULTICALL_ADDRESS) == MULTICALL_ADDRESS

    def test_tron_hex(self):
        cfg = load_network_config({})
        assert resolve_multicall_address(cfg, "41" + MULTICALL_ADDRESS[2:].lower()) == MULTICALL_ADDRESS

    def test_missing(self):
        with pytest.raises(ValueError, match="No multicall address configured for development"):
            resolve_multicall_address(LOCAL_DEV)

    def test_invalid(self):
        with pytest.raises(InvalidTargetError):
            resolve_multicall_address(LOCAL_DEV, "0x1234")

    def test_bad_checksum(self):
        with pytest.raises(InvalidTargetError, match="Bad address checksum"):
            resolve_multicall_address(LOCAL_DEV, "0xCA11bde05977b3631167028862bE2a173976CA11")

    def test_normalizes_through_calls(self):
        with patch("tron_multicall.config.normalize_address", return_value="normalized") as mock_normalize:
            assert resolve_multicall_address(LOCAL_DEV, MULTICALL_ADDRESS) == "normalized"
        mock_normalize.assert_called_once_with(MULTICALL_ADDRESS)


class TestBuildWeb3:

    def test_http_provider(self):
        w3 = build_web3(TRON_NILE)

        assert isinstance(w3, Web3)
        assert isinstance(w3.provider, Web3.HTTPProvider)
        assert w3.provider.endpoint_uri == TRON_NILE.rpc_url

    def test_request_timeout(self):
        w3 = build_web3(LOCAL_DEV, request_timeout=5)
        assert w3.provider._request_kwargs['timeout'] == 5
