"""
Call Aggregator

Батчинг нескольких вызовов: каждый вызов исполняется по очереди через
Transport, провал одного вызова записывается в результат и не прерывает
остальные.

Использование:
```python
aggregator = Aggregator(transport)

batch = CallBatch()
batch.add_function_call(multicall_address, "getBlockNumber()")
batch.add_function_call(multicall_address, "getCurrentBlockTimestamp()")

result = aggregator.aggregate_static(batch)
block = result.decode(0, GET_BLOCK_NUMBER)
```
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .calls import AggregateResult, Call, CallResult
from .codec import decode_revert_reason, encode_function_call
from .errors import ExecutionReverted, TransportError
from .transport import CallOptions, Dispatch, EstimateRequest, Transport

# Настройка логгера
logger = logging.getLogger(__name__)


def coerce_calls(calls: Union['CallBatch', Iterable]) -> Tuple[Call, ...]:
    """
    Привести вход к кортежу Call.

    Все адреса проверяются до исполнения первого вызова:
    InvalidTargetError прерывает батч целиком, ничего не исполнив.
    """
    if isinstance(calls, CallBatch):
        return calls.calls
    return tuple(Call.coerce(c) for c in calls)


def run_batch(calls: Sequence[Call], dispatch: Dispatch) -> Tuple[CallResult, ...]:
    """
    Последовательное исполнение вызовов.

    ExecutionReverted одного вызова записывается как (False, revert data).
    Любое другое исключение (TransportError) прерывает батч.
    """
    results: List[CallResult] = []
    for index, call in enumerate(calls):
        try:
            return_data = dispatch(call.target, call.call_data)
        except ExecutionReverted as e:
            logger.debug(
                f"  Call #{index} to {call.target} reverted: "
                f"{e.reason or decode_revert_reason(e.data) or 'no reason'}"
            )
            results.append(CallResult(success=False, return_data=e.data))
            continue
        results.append(CallResult(success=True, return_data=bytes(return_data)))
    return tuple(results)


class CallBatch:
    """
    Упорядоченный список вызовов для aggregate.

    Порядок добавления = порядок исполнения = порядок результатов.
    """

    def __init__(self, calls: Iterable = ()):
        self._calls: List[Call] = [Call.coerce(c) for c in calls]

    @property
    def calls(self) -> Tuple[Call, ...]:
        return tuple(self._calls)

    def clear(self):
        """Очистка списка вызовов."""
        self._calls = []

    def add_call(self, call: Call):
        """Добавление вызова в батч."""
        self._calls.append(Call.coerce(call))

    def add_raw_call(self, target: str, call_data: bytes = b''):
        """Добавление сырого вызова."""
        self._calls.append(Call(target=target, call_data=call_data))

    def add_function_call(self, target: str, signature: str, args: Sequence = ()):
        """
        Добавление вызова функции по сигнатуре.

        Args:
            target: Адрес контракта
            signature: Каноническая сигнатура, например "getEthBalance(address)"
            args: Аргументы вызова
        """
        self._calls.append(Call(target=target, call_data=encode_function_call(signature, args)))

    def __len__(self) -> int:
        return len(self._calls)

    def __iter__(self):
        return iter(self.calls)

    def __repr__(self) -> str:
        return f"CallBatch({len(self._calls)} calls)"


class Aggregator:
    """
    Агрегатор вызовов поверх Transport.

    aggregate        - исполнение с фиксацией (Transport.submit)
    aggregate_static - то же без фиксации, все подвызовы на одном блоке
    estimate_cost    - оценка energy/gas через внешний оценщик
    """

    def __init__(self, transport: Transport, options: Optional[CallOptions] = None):
        self.transport = transport
        self.options = options

    def aggregate(self, calls, options: Optional[CallOptions] = None) -> AggregateResult:
        """
        Исполнение батча с фиксацией состояния.

        Returns:
            AggregateResult: высота блока на момент начала батча
            и результаты в порядке вызовов

        Raises:
            InvalidTargetError: неверный адрес (до исполнения)
            TransportError: среда исполнения недоступна
        """
        calls = coerce_calls(calls)
        options = options or self.options

        block_number = self.transport.block_number()
        logger.info(f"Aggregate: {len(calls)} calls at block {block_number}")

        results = run_batch(
            calls,
            lambda target, data: self.transport.submit(target, data, options),
        )
        return self._finish(block_number, results)

    def aggregate_static(self, calls, caller: Optional[str] = None) -> AggregateResult:
        """
        Исполнение батча без фиксации.

        Высота блока читается один раз, и все подвызовы симулируются
        на этом блоке в одной сессии транспорта.
        """
        calls = coerce_calls(calls)

        block_number = self.transport.block_number()
        logger.debug(f"Aggregate (static): {len(calls)} calls at block {block_number}")

        dispatch = self.transport.simulation_session(caller=caller, block=block_number)
        results = run_batch(calls, dispatch)
        return self._finish(block_number, results)

    def aggregate_with_timestamp(self, calls, static: bool = False, **kwargs) -> AggregateResult:
        """aggregate / aggregate_static + timestamp блока."""
        result = self.aggregate_static(calls, **kwargs) if static else self.aggregate(calls, **kwargs)
        timestamp = self.transport.block_timestamp(result.block_number)
        return AggregateResult(
            block_number=result.block_number,
            return_data=result.return_data,
            block_timestamp=timestamp,
        )

    def estimate_cost(
        self,
        target: str,
        function_selector: str,
        parameter: bytes = b'',
        options: Optional[CallOptions] = None,
        caller: Optional[str] = None,
    ) -> int:
        """
        Оценка energy/gas без реального исполнения.

        Args:
            target: Адрес контракта
            function_selector: Сигнатура, например "aggregate((address,bytes)[])"
            parameter: Закодированные аргументы (без селектора)
            options: fee_limit / call_value / should_poll_response
            caller: Адрес отправителя

        Raises:
            ExecutionReverted: вызов откатился бы
            TransportError: оценщик недоступен или вернул не положительное число
        """
        request = EstimateRequest(
            target=target,
            function_selector=function_selector,
            parameter=parameter,
            options=options or self.options or CallOptions(),
            caller=caller,
        )
        cost = self.transport.estimate_cost(request)
        if not isinstance(cost, int) or cost <= 0:
            raise TransportError(f"Estimator returned invalid cost: {cost!r}")

        logger.info(f"Estimated {function_selector} on {request.target}: {cost}")
        return cost

    @staticmethod
    def _finish(block_number: int, results: Tuple[CallResult, ...]) -> AggregateResult:
        failed = sum(1 for r in results if not r.success)
        if failed:
            logger.warning(f"Aggregate: {failed}/{len(results)} calls failed")
        return AggregateResult(block_number=block_number, return_data=results)

    def __repr__(self) -> str:
        return f"Aggregator({type(self.transport).__name__})"
