"""
TRON Multicall

Batching of contract calls through an aggregator: ordered results,
per-call failure isolation, typed decoding and energy estimation.
"""

from .calls import AggregateResult, Call, CallResult, normalize_address
from .codec import (
    AGGREGATE,
    GET_BLOCK_NUMBER,
    GET_CHAIN_ID,
    GET_CURRENT_BLOCK_TIMESTAMP,
    GET_ETH_BALANCE,
    MULTICALL,
    RAW,
    CallShape,
    decode_aggregate_result,
    decode_return,
    encode_aggregate,
    encode_function_call,
    function_selector,
)
from .errors import (
    DecodeError,
    ExecutionReverted,
    InvalidTargetError,
    MulticallError,
    SubCallFailure,
    TransportError,
)
from .transport import CallOptions, EstimateRequest, Transport, Web3Transport
from .aggregator import Aggregator, CallBatch
from .contract import MulticallContract
from .local import ContractProgram, LocalTransport, MulticallProgram

__all__ = [
    'AggregateResult',
    'Call',
    'CallResult',
    'normalize_address',
    'AGGREGATE',
    'GET_BLOCK_NUMBER',
    'GET_CHAIN_ID',
    'GET_CURRENT_BLOCK_TIMESTAMP',
    'GET_ETH_BALANCE',
    'MULTICALL',
    'RAW',
    'CallShape',
    'decode_aggregate_result',
    'decode_return',
    'encode_aggregate',
    'encode_function_call',
    'function_selector',
    'DecodeError',
    'ExecutionReverted',
    'InvalidTargetError',
    'MulticallError',
    'SubCallFailure',
    'TransportError',
    'CallOptions',
    'EstimateRequest',
    'Transport',
    'Web3Transport',
    'Aggregator',
    'CallBatch',
    'MulticallContract',
    'ContractProgram',
    'LocalTransport',
    'MulticallProgram',
]
