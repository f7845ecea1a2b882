"""
Tests for the smoke runner (tron_multicall.smoke).

run_smoke прогоняется на локальном леджере, main() - с подменой
сети и транспорта.
"""

from dataclasses import replace
from types import SimpleNamespace

import pytest
from unittest.mock import Mock, patch

from tron_multicall.config import ENV_PRIVATE_KEY, LOCAL_DEV
from tron_multicall.smoke import SmokeReport, build_parser, main, run_smoke


SENDER = "0x1234567890123456789012345678901234567890"


# ---------------------------------------------------------------------------
# run_smoke
# ---------------------------------------------------------------------------

class TestRunSmoke:

    def test_consistent_report(self, deployment):
        report = run_smoke(deployment.contract)

        assert report.consistent
        assert report.block_number == 100
        assert report.decoded_block_number == 100
        assert report.timestamp == 1_700_000_000
        assert report.energy > 0

    def test_read_only(self, deployment):
        run_smoke(deployment.contract)
        assert deployment.ledger.transactions == []

    def test_follows_ledger_height(self, deployment):
        deployment.ledger.mine(4)
        report = run_smoke(deployment.contract, caller=SENDER)

        assert report.block_number == 104
        assert report.timestamp == 1_700_000_012


class TestSmokeReport:

    def test_block_mismatch_inconsistent(self):
        report = SmokeReport(
            block_number=10, block_number_ok=True, decoded_block_number=11, timestamp=1, energy=1
        )
        assert report.consistent is False

    def test_failed_call_inconsistent(self):
        report = SmokeReport(
            block_number=10, block_number_ok=False, decoded_block_number=10, timestamp=1, energy=1
        )
        assert report.consistent is False

    def test_zero_timestamp_inconsistent(self):
        report = SmokeReport(
            block_number=10, block_number_ok=True, decoded_block_number=10, timestamp=0, energy=1
        )
        assert report.consistent is False


# ---------------------------------------------------------------------------
# main()
# ---------------------------------------------------------------------------

class TestMain:
    """CLI: exit codes 0 / 1 / 2."""

    @pytest.fixture(autouse=True)
    def no_private_key(self, monkeypatch):
        monkeypatch.delenv(ENV_PRIVATE_KEY, raising=False)

    @pytest.fixture
    def patched(self, deployment):
        """Сеть без адреса агрегатора и транспорт = локальный леджер."""
        with patch("tron_multicall.smoke.load_network_config", return_value=replace(LOCAL_DEV)), \
                patch("tron_multicall.smoke.build_web3") as mock_build_web3, \
                patch("tron_multicall.smoke.Web3Transport", return_value=deployment.ledger) as mock_transport:
            yield SimpleNamespace(build_web3=mock_build_web3, transport=mock_transport)

    def test_missing_address(self, patched):
        assert main([]) == 2
        patched.transport.assert_not_called()

    def test_success(self, deployment, patched):
        assert main(["--address", deployment.multicall]) == 0
        patched.transport.assert_called_once_with(patched.build_web3.return_value, None)

    def test_address_from_environment(self, deployment):
        config = replace(LOCAL_DEV, multicall=deployment.multicall)
        with patch("tron_multicall.smoke.load_network_config", return_value=config), \
                patch("tron_multicall.smoke.build_web3"), \
                patch("tron_multicall.smoke.Web3Transport", return_value=deployment.ledger):
            assert main([]) == 0

    def test_rpc_url_override(self, deployment, patched):
        main(["--address", deployment.multicall, "--rpc-url", "http://10.0.0.1:8090/jsonrpc"])

        config = patched.build_web3.call_args[0][0]
        assert config.rpc_url == "http://10.0.0.1:8090/jsonrpc"

    def test_transport_failure(self, deployment, patched):
        deployment.ledger.disconnect()
        assert main(["--address", deployment.multicall]) == 1

    def test_fee_limit_too_low(self, deployment, patched):
        assert main(["--address", deployment.multicall, "--fee-limit", "1"]) == 1

    def test_private_key_account(self, deployment, patched, monkeypatch):
        monkeypatch.setenv(ENV_PRIVATE_KEY, "0x" + "11" * 32)
        account = Mock(address=SENDER)

        with patch("tron_multicall.smoke.Account.from_key", return_value=account) as mock_from_key:
            assert main(["--address", deployment.multicall]) == 0

        mock_from_key.assert_called_once_with("0x" + "11" * 32)
        patched.transport.assert_called_once_with(patched.build_web3.return_value, account)


class TestParser:

    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.address is None
        assert args.rpc_url is None
        assert args.fee_limit is None
        assert args.verbose is False

    def test_fee_limit_is_int(self):
        assert build_parser().parse_args(["--fee-limit", "5000"]).fee_limit == 5000
