"""
Transport: граница со средой исполнения.

Транспорт умеет три вещи:
- submit   - выполнить вызов с фиксацией состояния (транзакция)
- simulate - выполнить вызов без фиксации (eth_call)
- estimate_cost - оценить energy/gas без исполнения

Revert отдельного вызова сигнализируется ExecutionReverted,
недоступность ноды / ошибка протокола - TransportError.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

import requests
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from .calls import normalize_address, to_bytes
from .codec import decode_revert_reason, function_selector
from .config import DEFAULT_CALL_VALUE, DEFAULT_FEE_LIMIT, DEFAULT_RECEIPT_TIMEOUT
from .errors import ExecutionReverted, TransportError

logger = logging.getLogger(__name__)

BlockId = Union[int, str, None]
Dispatch = Callable[[str, bytes], bytes]


@dataclass(frozen=True)
class CallOptions:
    """Параметры исполнения транзакции."""
    fee_limit: int = DEFAULT_FEE_LIMIT        # Потолок energy/gas
    call_value: int = DEFAULT_CALL_VALUE      # Переводимая сумма (sun / wei)
    should_poll_response: bool = True         # Ждать ли подтверждения

    def __post_init__(self):
        if self.fee_limit is not None and self.fee_limit <= 0:
            raise ValueError(f"fee_limit must be positive, got {self.fee_limit}")
        if self.call_value < 0:
            raise ValueError(f"call_value must be non-negative, got {self.call_value}")


DEFAULT_OPTIONS = CallOptions()


@dataclass(frozen=True)
class EstimateRequest:
    """Запрос оценки стоимости: всё, что нужно внешнему оценщику."""
    target: str
    function_selector: str                    # "aggregate((address,bytes)[])"
    parameter: bytes = b''                    # Закодированные аргументы без селектора
    options: CallOptions = field(default_factory=CallOptions)
    caller: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'target', normalize_address(self.target))
        object.__setattr__(self, 'parameter', to_bytes(self.parameter))
        if self.caller is not None:
            object.__setattr__(self, 'caller', normalize_address(self.caller))

    @property
    def call_data(self) -> bytes:
        return function_selector(self.function_selector) + self.parameter


class Transport(ABC):
    """Интерфейс среды исполнения."""

    @abstractmethod
    def submit(self, target: str, call_data: bytes, options: Optional[CallOptions] = None) -> bytes:
        """Выполнить вызов с фиксацией. Возвращает сырые байты ответа."""

    @abstractmethod
    def simulate(
        self,
        target: str,
        call_data: bytes,
        caller: Optional[str] = None,
        block: BlockId = None,
    ) -> bytes:
        """Выполнить вызов без фиксации состояния."""

    @abstractmethod
    def estimate_cost(self, request: EstimateRequest) -> int:
        """Оценка energy/gas для вызова."""

    @abstractmethod
    def block_number(self) -> int:
        """Текущая высота леджера."""

    @abstractmethod
    def block_timestamp(self, block: BlockId = None) -> int:
        """Timestamp блока (по умолчанию последнего)."""

    def simulation_session(self, caller: Optional[str] = None, block: BlockId = None) -> Dispatch:
        """
        Функция исполнения для серии вызовов без фиксации.

        По умолчанию каждый вызов - отдельный simulate на блоке block,
        и вызовы не видят изменений друг друга. Транспорт, который
        умеет держать общее состояние, переопределяет метод.
        """
        return lambda target, call_data: self.simulate(target, call_data, caller=caller, block=block)


def _revert_data(exc: ContractLogicError) -> bytes:
    """Сырые данные revert из ContractLogicError (hex строка или bytes)."""
    data = getattr(exc, 'data', None)
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str) and data.startswith("0x"):
        try:
            return bytes.fromhex(data[2:])
        except ValueError:
            return b''
    return b''


class Web3Transport(Transport):
    """
    Транспорт поверх web3.py (TRON JSON-RPC / любая EVM нода).

    Использование:
    ```python
    w3 = Web3(Web3.HTTPProvider(rpc_url))
    transport = Web3Transport(w3, account)
    data = transport.simulate(multicall_address, call_data)
    ```
    """

    def __init__(
        self,
        w3: Web3,
        account: LocalAccount = None,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ):
        self.w3 = w3
        self.account = account
        self.receipt_timeout = receipt_timeout

        self._nonce_lock = threading.Lock()
        self._next_nonce: Optional[int] = None

    @contextmanager
    def _translate_errors(self, action: str):
        """Перевод исключений web3/requests в ExecutionReverted / TransportError."""
        try:
            yield
        except ContractLogicError as e:
            data = _revert_data(e)
            reason = decode_revert_reason(data) or getattr(e, 'message', None) or str(e)
            logger.debug(f"{action} reverted: {reason}")
            raise ExecutionReverted(data, reason) from e
        except TimeExhausted as e:
            logger.error(f"{action} timed out: {e}")
            raise TransportError(f"{action} timed out: {e}") from e
        except (requests.exceptions.RequestException, ConnectionError) as e:
            logger.error(f"{action} failed, node unreachable: {e}")
            raise TransportError(f"{action} failed, node unreachable: {e}") from e
        except (Web3Exception, ValueError) as e:
            # web3 v6 отдаёт ошибки RPC как ValueError
            logger.error(f"{action} failed: {e}")
            raise TransportError(f"{action} failed: {e}") from e

    def _caller(self, caller: Optional[str]) -> Optional[str]:
        if caller is not None:
            return normalize_address(caller)
        return self.account.address if self.account else None

    # ── Nonce tracking ────────────────────────────────────────────

    def _allocate_nonce(self) -> int:
        with self._nonce_lock:
            chain_nonce = self.w3.eth.get_transaction_count(self.account.address, 'pending')
            if self._next_nonce is None or chain_nonce > self._next_nonce:
                self._next_nonce = chain_nonce
            nonce = self._next_nonce
            self._next_nonce += 1
            logger.debug(f"Allocated nonce: {nonce}")
            return nonce

    def _release_nonce(self, nonce: int):
        """Вернуть nonce, если транзакция так и не ушла в сеть."""
        with self._nonce_lock:
            if self._next_nonce is not None and nonce == self._next_nonce - 1:
                self._next_nonce = nonce
            logger.debug(f"Released nonce: {nonce}, next: {self._next_nonce}")

    # ── Transport ─────────────────────────────────────────────────

    def simulate(
        self,
        target: str,
        call_data: bytes,
        caller: Optional[str] = None,
        block: BlockId = None,
        value: int = 0,
    ) -> bytes:
        tx = {
            'to': normalize_address(target),
            'data': to_bytes(call_data),
        }
        sender = self._caller(caller)
        if sender:
            tx['from'] = sender
        if value:
            tx['value'] = value

        with self._translate_errors("eth_call"):
            result = self.w3.eth.call(tx, block_identifier=block if block is not None else 'latest')
        return bytes(result)

    def submit(self, target: str, call_data: bytes, options: Optional[CallOptions] = None) -> bytes:
        """
        Отправка транзакции.

        Сначала eth_call на 'pending' - receipt не содержит return data,
        поэтому ответ берётся из пробного вызова. Потом подпись и отправка.
        """
        if not self.account:
            raise ValueError("Account not set")

        options = options or DEFAULT_OPTIONS
        target = normalize_address(target)
        call_data = to_bytes(call_data)

        return_data = self.simulate(
            target, call_data, block='pending', value=options.call_value
        )

        nonce = self._allocate_nonce()
        tx_sent = False
        try:
            with self._translate_errors("send_transaction"):
                tx = {
                    'from': self.account.address,
                    'to': target,
                    'data': call_data,
                    'value': options.call_value,
                    'nonce': nonce,
                    'gas': options.fee_limit,
                    'gasPrice': self.w3.eth.gas_price,
                    'chainId': self.w3.eth.chain_id,
                }
                signed = self.account.sign_transaction(tx)
                tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
                tx_sent = True
                logger.info(f"Transaction sent: {tx_hash.hex()}")

                if not options.should_poll_response:
                    return return_data

                receipt = self.w3.eth.wait_for_transaction_receipt(
                    tx_hash, timeout=self.receipt_timeout
                )
        except Exception:
            if not tx_sent:
                self._release_nonce(nonce)
            raise

        status = receipt.get('status', 0)
        logger.info(
            f"TX {'SUCCESS' if status == 1 else 'FAILED'}: "
            f"block={receipt.get('blockNumber')}, gas={receipt.get('gasUsed', 0)}"
        )
        if status != 1:
            raise ExecutionReverted(b'', "transaction reverted on chain")
        return return_data

    def estimate_cost(self, request: EstimateRequest) -> int:
        tx = {
            'to': request.target,
            'data': request.call_data,
            'value': request.options.call_value,
        }
        sender = self._caller(request.caller)
        if sender:
            tx['from'] = sender
        if request.options.fee_limit:
            tx['gas'] = request.options.fee_limit

        with self._translate_errors("estimate_gas"):
            estimated = self.w3.eth.estimate_gas(tx)
        logger.debug(f"Estimated {request.function_selector} on {request.target}: {estimated}")
        return int(estimated)

    def block_number(self) -> int:
        with self._translate_errors("eth_blockNumber"):
            return int(self.w3.eth.block_number)

    def block_timestamp(self, block: BlockId = None) -> int:
        with self._translate_errors("eth_getBlockByNumber"):
            header = self.w3.eth.get_block(block if block is not None else 'latest')
        return int(header['timestamp'])
