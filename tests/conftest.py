"""
Shared fixtures for all tests.
"""

from dataclasses import dataclass
from unittest.mock import MagicMock, Mock

import pytest

from tron_multicall.aggregator import Aggregator
from tron_multicall.contract import MulticallContract
from tron_multicall.local import ContractProgram, LocalTransport, MulticallProgram, revert


class CounterProgram(ContractProgram):
    """Тестовый контракт со счётчиком и заведомо падающими функциями."""

    ROUTES = {
        "increment()": "increment",
        "count()": "count",
        "fail()": "fail",
        "incrementAndFail()": "increment_and_fail",
        "echo(bytes)": "echo",
    }

    def increment(self, ctx) -> bytes:
        ctx.storage['count'] = ctx.storage.get('count', 0) + 1
        return self.returns(["uint256"], ctx.storage['count'])

    def count(self, ctx) -> bytes:
        return self.returns(["uint256"], ctx.storage.get('count', 0))

    def fail(self, ctx) -> bytes:
        revert("always fails")

    def increment_and_fail(self, ctx) -> bytes:
        ctx.storage['count'] = ctx.storage.get('count', 0) + 1
        revert("incremented, then failed")

    def echo(self, ctx, data: bytes) -> bytes:
        return self.returns(["bytes"], data)


@dataclass(frozen=True)
class Deployment:
    """Развёрнутый агрегатор и тестовый счётчик на локальном леджере."""
    ledger: LocalTransport
    multicall: str
    counter: str
    contract: MulticallContract
    aggregator: Aggregator


@pytest.fixture
def deployment():
    """Свежий леджер на каждый тест."""
    ledger = LocalTransport(start_block=100, start_timestamp=1_700_000_000)
    multicall = ledger.deploy(MulticallProgram())
    counter = ledger.deploy(CounterProgram())
    return Deployment(
        ledger=ledger,
        multicall=multicall,
        counter=counter,
        contract=MulticallContract(ledger, multicall),
        aggregator=Aggregator(ledger),
    )


class MockWeb3:
    """Переиспользуемый мок Web3 для тестов."""

    def __init__(self, initial_nonce: int = 100):
        self._nonce = initial_nonce
        self.eth = MagicMock()
        self.eth.get_transaction_count = MagicMock(return_value=self._nonce)
        self.eth.gas_price = 420
        self.eth.chain_id = 3448148188
        self.eth.block_number = 40_000_000
        self.eth.get_block = MagicMock(return_value={'number': 40_000_000, 'timestamp': 1_700_000_123})
        self.eth.send_raw_transaction = MagicMock(return_value=b'\x12\x34' * 16)
        self.eth.wait_for_transaction_receipt = MagicMock(return_value={
            'status': 1,
            'gasUsed': 300_000,
            'blockNumber': 40_000_001,
            'logs': [],
            'transactionHash': b'\x12\x34' * 16
        })
        self.eth.call = MagicMock(return_value=b'\x00' * 31 + b'\x07')
        self.eth.estimate_gas = MagicMock(return_value=123_456)

    def set_nonce(self, nonce: int):
        self._nonce = nonce
        self.eth.get_transaction_count.return_value = nonce


@pytest.fixture
def mock_w3():
    """Мок Web3 instance."""
    return MockWeb3()


@pytest.fixture
def mock_account():
    """Мок LocalAccount."""
    account = Mock()
    account.address = "0x1234567890123456789012345678901234567890"
    account.sign_transaction = Mock(return_value=Mock(raw_transaction=b'signed_tx'))
    return account
