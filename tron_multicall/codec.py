"""
ABI codec for multicall payloads.

Encodes function calls into call data and decodes raw return bytes back
into typed values. Known call shapes are described by CallShape; anything
else goes through the RAW shape and stays opaque bytes.

Wire format (TronMulticall / Multicall2 compatible):
    aggregate((address,bytes)[])  -> (uint256 blockNumber, (bool,bytes)[] returnData)
    multicall(bytes[])            -> (bytes[] results)
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_abi.grammar import parse
from web3 import Web3

from .calls import AggregateResult, Call, CallResult, to_bytes
from .errors import DecodeError

logger = logging.getLogger(__name__)

# Error(string) и Panic(uint256)
ERROR_STRING_SELECTOR = bytes.fromhex("08c379a0")
PANIC_SELECTOR = bytes.fromhex("4e487b71")

CALL_TUPLE_TYPE = "(address,bytes)[]"
RESULT_TUPLE_TYPE = "(bool,bytes)[]"


def function_selector(signature: str) -> bytes:
    """First 4 bytes of keccak256 of the canonical signature."""
    return bytes(Web3.keccak(text=signature.replace(" ", ""))[:4])


def input_types(signature: str) -> Tuple[str, ...]:
    """
    Argument types from a canonical signature.

    "aggregate((address,bytes)[])" -> ("(address,bytes)[]",)
    """
    start = signature.find("(")
    if start <= 0 or not signature.endswith(")"):
        raise ValueError(f"Not a function signature: {signature!r}")
    body = signature[start + 1:-1].replace(" ", "")
    if not body:
        return ()

    types, depth, current = [], 0, ""
    for ch in body:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            types.append(current)
            current = ""
        else:
            current += ch
    types.append(current)
    return tuple(types)


def encode_arguments(types: Sequence[str], args: Sequence[Any]) -> bytes:
    """ABI-encode arguments without a selector."""
    try:
        return encode(list(types), list(args))
    except (EncodingError, TypeError, ValueError) as e:
        raise ValueError(f"Cannot encode {list(args)!r} as {list(types)}: {e}") from e


def encode_function_call(signature: str, args: Sequence[Any] = ()) -> bytes:
    """selector + encoded arguments."""
    return function_selector(signature) + encode_arguments(input_types(signature), args)


def _is_static(types: Sequence[str]) -> bool:
    return not any(parse(t).is_dynamic for t in types)


def decode_return(data: bytes, output_types: Sequence[str]) -> tuple:
    """
    Decode raw return bytes into a tuple of values.

    For all-static type lists the length must match exactly; dynamic
    layouts are validated by eth_abi itself.

    Raises:
        DecodeError: length/layout does not match output_types
    """
    data = to_bytes(data)
    output_types = list(output_types)
    try:
        values = decode(output_types, data)
    except (DecodingError, OverflowError, ValueError) as e:
        raise DecodeError(
            f"Cannot decode {len(data)} bytes as ({','.join(output_types)}): {e}"
        ) from e

    if _is_static(output_types):
        expected = len(encode(output_types, list(values)))
        if len(data) != expected:
            raise DecodeError(
                f"Expected {expected} bytes for ({','.join(output_types)}), got {len(data)}"
            )
    return tuple(values)


@dataclass(frozen=True)
class CallShape:
    """
    Known call shape: signature plus expected output types.

    output_types=None is the opaque fallback: return data stays raw bytes.
    """
    signature: str
    output_types: Optional[Tuple[str, ...]] = None

    @property
    def selector(self) -> bytes:
        return function_selector(self.signature)

    @property
    def is_raw(self) -> bool:
        return self.output_types is None

    def encode(self, *args) -> bytes:
        return encode_function_call(self.signature, args)

    def call(self, target, *args) -> Call:
        return Call(target=target, call_data=self.encode(*args))

    def decode(self, data: bytes):
        """Decoded value; single-output shapes are unwrapped to a scalar."""
        if self.is_raw:
            return to_bytes(data)
        values = decode_return(data, self.output_types)
        if len(values) == 1:
            return values[0]
        return values


RAW = CallShape(signature="", output_types=None)

GET_BLOCK_NUMBER = CallShape("getBlockNumber()", ("uint256",))
GET_CURRENT_BLOCK_TIMESTAMP = CallShape("getCurrentBlockTimestamp()", ("uint256",))
GET_CHAIN_ID = CallShape("getChainId()", ("uint256",))
GET_ETH_BALANCE = CallShape("getEthBalance(address)", ("uint256",))
AGGREGATE = CallShape("aggregate((address,bytes)[])", ("uint256", RESULT_TUPLE_TYPE))
MULTICALL = CallShape("multicall(bytes[])", ("bytes[]",))

KNOWN_SHAPES = {
    shape.selector: shape
    for shape in (
        GET_BLOCK_NUMBER,
        GET_CURRENT_BLOCK_TIMESTAMP,
        GET_CHAIN_ID,
        GET_ETH_BALANCE,
        AGGREGATE,
        MULTICALL,
    )
}


def shape_for(call_data: bytes) -> CallShape:
    """Known shape for the call data's selector, RAW otherwise."""
    return KNOWN_SHAPES.get(to_bytes(call_data)[:4], RAW)


def decode_shape(data: bytes, shape: Union[CallShape, Sequence[str]]):
    """Decode with a CallShape or a plain list of ABI types."""
    if isinstance(shape, CallShape):
        return shape.decode(data)
    return decode_return(data, shape)


# ============================================================
# AGGREGATE PAYLOADS
# ============================================================

def aggregate_arguments(calls: Sequence[Call]) -> bytes:
    """Encoded argument blob of aggregate(...) (no selector)."""
    return encode([CALL_TUPLE_TYPE], [[c.to_tuple() for c in calls]])


def encode_aggregate(calls: Sequence[Call]) -> bytes:
    """Call data for aggregate((address,bytes)[])."""
    return AGGREGATE.selector + aggregate_arguments(calls)


def decode_aggregate_calls(call_data: bytes) -> List[Call]:
    """Inverse of encode_aggregate."""
    call_data = to_bytes(call_data)
    if call_data[:4] != AGGREGATE.selector:
        raise DecodeError(f"Not an aggregate call: selector 0x{call_data[:4].hex()}")
    (raw_calls,) = decode_return(call_data[4:], [CALL_TUPLE_TYPE])
    return [Call(target=target, call_data=data) for target, data in raw_calls]


def encode_aggregate_result(result: AggregateResult) -> bytes:
    """Return data of aggregate(...) as the contract produces it."""
    return encode(
        ["uint256", RESULT_TUPLE_TYPE],
        [result.block_number, [r.to_tuple() for r in result.return_data]],
    )


def decode_aggregate_result(data: bytes) -> AggregateResult:
    """Return data of aggregate(...) -> AggregateResult."""
    block_number, raw_results = decode_return(data, AGGREGATE.output_types)
    return AggregateResult(
        block_number=block_number,
        return_data=tuple(CallResult(success=s, return_data=d) for s, d in raw_results),
    )


def encode_multicall(payloads: Sequence[bytes]) -> bytes:
    """Call data for multicall(bytes[])."""
    return MULTICALL.selector + encode(["bytes[]"], [[to_bytes(p) for p in payloads]])


def decode_multicall_payloads(call_data: bytes) -> List[bytes]:
    call_data = to_bytes(call_data)
    if call_data[:4] != MULTICALL.selector:
        raise DecodeError(f"Not a multicall call: selector 0x{call_data[:4].hex()}")
    (payloads,) = decode_return(call_data[4:], ["bytes[]"])
    return list(payloads)


def decode_multicall_result(data: bytes) -> List[bytes]:
    return list(MULTICALL.decode(data))


# ============================================================
# REVERT DATA
# ============================================================

def encode_revert_reason(reason: str) -> bytes:
    """Error(string) revert payload."""
    return ERROR_STRING_SELECTOR + encode(["string"], [reason])


def decode_revert_reason(data: bytes) -> Optional[str]:
    """
    Human-readable revert reason.

    Returns None for empty or custom-error payloads.
    """
    data = to_bytes(data)
    if len(data) < 4:
        return None

    if data[:4] == ERROR_STRING_SELECTOR:
        try:
            return decode(["string"], data[4:])[0]
        except (DecodingError, UnicodeDecodeError) as e:
            logger.debug(f"Malformed Error(string) payload: {e}")
            return None

    if data[:4] == PANIC_SELECTOR and len(data) >= 36:
        code = int.from_bytes(data[4:36], 'big')
        return f"Panic(0x{code:02x})"

    return None
