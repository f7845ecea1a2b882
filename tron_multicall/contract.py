"""
MulticallContract

Клиент развёрнутого агрегатора (TronMulticall / Multicall2-совместимый ABI).
Весь батч исполняется одной транзакцией, поэтому на цепочке он атомарен:
одна высота блока для всех подвызовов.

Использование:
```python
contract = MulticallContract(transport, multicall_address)

call0 = contract.aggregate_call([GET_BLOCK_NUMBER.call(contract.address)])
call1 = contract.aggregate_call([GET_CURRENT_BLOCK_TIMESTAMP.call(contract.address)])

results = contract.multicall([call0.call_data, call1.call_data], static=True)
nested = decode_aggregate_result(results[0])
```
"""

import logging
from typing import List, Optional, Sequence

from .aggregator import Aggregator, coerce_calls
from .calls import AggregateResult, Call, normalize_address, to_bytes
from .codec import (
    AGGREGATE,
    GET_BLOCK_NUMBER,
    GET_CURRENT_BLOCK_TIMESTAMP,
    MULTICALL,
    aggregate_arguments,
    decode_aggregate_result,
    decode_multicall_result,
    encode_aggregate,
    encode_multicall,
)
from .errors import DecodeError
from .transport import CallOptions, Transport

# Настройка логгера
logger = logging.getLogger(__name__)


class MulticallContract:
    """Развёрнутый агрегатор по адресу."""

    def __init__(self, transport: Transport, address: str, options: Optional[CallOptions] = None):
        self.transport = transport
        self.address = normalize_address(address)
        self.options = options
        self._estimator = Aggregator(transport, options)

    # ── Построение вызовов ────────────────────────────────────────

    def aggregate_call(self, calls) -> Call:
        """
        Call на aggregate(...) этого контракта.

        Такой Call можно положить в другой батч (batch-of-batches),
        в том числе в батч этого же агрегатора.
        """
        return Call(target=self.address, call_data=encode_aggregate(coerce_calls(calls)))

    # ── aggregate ─────────────────────────────────────────────────

    def aggregate(self, calls, options: Optional[CallOptions] = None) -> AggregateResult:
        """
        aggregate(...) транзакцией.

        Raises:
            InvalidTargetError: неверный адрес в вызовах
            ExecutionReverted: транзакция откатилась целиком
            TransportError: нода недоступна
            DecodeError: ответ контракта не разбирается
        """
        calls = coerce_calls(calls)
        call_data = encode_aggregate(calls)
        logger.info(f"aggregate: {len(calls)} calls via {self.address}")

        raw = self.transport.submit(self.address, call_data, options or self.options)
        return self._decode(raw, len(calls))

    def aggregate_static(self, calls, caller: Optional[str] = None) -> AggregateResult:
        """aggregate(...) через simulate, без фиксации состояния."""
        calls = coerce_calls(calls)
        raw = self.transport.simulate(self.address, encode_aggregate(calls), caller=caller)
        return self._decode(raw, len(calls))

    def aggregate_with_timestamp(self, calls, static: bool = False, **kwargs) -> AggregateResult:
        """
        aggregate + timestamp блока.

        В батч добавляется getCurrentBlockTimestamp() этого контракта,
        его результат снимается с конца и кладётся в block_timestamp.
        """
        calls = coerce_calls(calls) + (GET_CURRENT_BLOCK_TIMESTAMP.call(self.address),)
        result = self.aggregate_static(calls, **kwargs) if static else self.aggregate(calls, **kwargs)

        timestamp_result = result.return_data[-1]
        if not timestamp_result.success:
            raise DecodeError("getCurrentBlockTimestamp() failed inside aggregate")
        return AggregateResult(
            block_number=result.block_number,
            return_data=result.return_data[:-1],
            block_timestamp=timestamp_result.decode(GET_CURRENT_BLOCK_TIMESTAMP),
        )

    # ── multicall(bytes[]) ───────────────────────────────────────

    def multicall(
        self,
        payloads: Sequence[bytes],
        static: bool = False,
        options: Optional[CallOptions] = None,
        caller: Optional[str] = None,
    ) -> List[bytes]:
        """
        multicall(bytes[]): каждый payload исполняется на самом контракте.

        В отличие от aggregate, revert любого payload откатывает всё.
        """
        payloads = [to_bytes(p) for p in payloads]
        call_data = encode_multicall(payloads)
        if static:
            raw = self.transport.simulate(self.address, call_data, caller=caller)
        else:
            raw = self.transport.submit(self.address, call_data, options or self.options)

        results = decode_multicall_result(raw)
        if len(results) != len(payloads):
            raise DecodeError(f"multicall returned {len(results)} results for {len(payloads)} payloads")
        return results

    # ── Хелперы ───────────────────────────────────────────────────

    def get_block_number(self) -> int:
        return GET_BLOCK_NUMBER.decode(
            self.transport.simulate(self.address, GET_BLOCK_NUMBER.encode())
        )

    def get_current_block_timestamp(self) -> int:
        return GET_CURRENT_BLOCK_TIMESTAMP.decode(
            self.transport.simulate(self.address, GET_CURRENT_BLOCK_TIMESTAMP.encode())
        )

    # ── Оценка energy ─────────────────────────────────────────────

    def estimate_aggregate_cost(
        self,
        calls,
        options: Optional[CallOptions] = None,
        caller: Optional[str] = None,
    ) -> int:
        """Оценка energy для aggregate(...) без исполнения."""
        return self._estimator.estimate_cost(
            self.address,
            AGGREGATE.signature,
            aggregate_arguments(coerce_calls(calls)),
            options=options,
            caller=caller,
        )

    def estimate_multicall_cost(
        self,
        payloads: Sequence[bytes],
        options: Optional[CallOptions] = None,
        caller: Optional[str] = None,
    ) -> int:
        """Оценка energy для multicall(bytes[]) без исполнения."""
        parameter = encode_multicall(payloads)[4:]
        return self._estimator.estimate_cost(
            self.address,
            MULTICALL.signature,
            parameter,
            options=options,
            caller=caller,
        )

    @staticmethod
    def _decode(raw: bytes, expected: int) -> AggregateResult:
        result = decode_aggregate_result(raw)
        if len(result) != expected:
            raise DecodeError(f"aggregate returned {len(result)} results for {expected} calls")
        failed = result.failures()
        if failed:
            logger.warning(f"aggregate: calls {[i for i, _ in failed]} failed")
        return result

    def __repr__(self) -> str:
        return f"MulticallContract({self.address})"
