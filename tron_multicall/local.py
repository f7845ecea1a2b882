"""
LocalTransport: in-process ledger.

Addresses are bound to Python programs (ContractProgram) that answer
calls by selector. There is no bytecode and no consensus: this is a
deterministic execution environment for offline runs and tests.

Semantics:
- submit runs inside one snapshot; a revert rolls everything back
- a nested call that reverts rolls back only its own effects
- simulate / estimate_cost run on a throw-away copy of the state
- simulation_session shares one throw-away copy across a whole batch
- submits go into the current block until mine() is called
- calls to addresses without a program succeed with empty data
"""

import copy
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from eth_abi import encode
from web3 import Web3

from .aggregator import run_batch
from .calls import AggregateResult, Call, normalize_address, to_bytes
from .codec import (
    decode_return,
    encode_aggregate_result,
    encode_revert_reason,
    function_selector,
    input_types,
)
from .config import LOCAL_DEV
from .errors import DecodeError, ExecutionReverted, TransportError
from .transport import BlockId, CallOptions, Dispatch, EstimateRequest, Transport

logger = logging.getLogger(__name__)

# Energy tariff
BASE_CALL_ENERGY = 700
DATA_BYTE_ENERGY = 16

MAX_CALL_DEPTH = 64

LOCAL_CALLER = normalize_address("0x" + "a1" * 20)


@dataclass(frozen=True)
class LedgerEntry:
    """Committed transaction."""
    block_number: int
    caller: str
    target: str
    call_data: bytes
    return_data: bytes
    energy_used: int


def revert(reason: str):
    """Revert with an Error(string) payload."""
    raise ExecutionReverted(encode_revert_reason(reason), reason)


class ExecutionContext:
    """
    State of one top-level invocation.

    The block number and timestamp are fixed for the whole invocation,
    so every nested call sees the same height.
    """

    def __init__(
        self,
        ledger: 'LocalTransport',
        state: dict,
        block_number: int,
        timestamp: int,
        caller: str,
        energy_limit: Optional[int] = None,
    ):
        self.ledger = ledger
        self.state = state
        self.block_number = block_number
        self.timestamp = timestamp
        self.origin = caller
        self.energy_limit = energy_limit
        self.energy_used = 0
        self._frames: List[Tuple[str, str]] = []  # (address, msg.sender)

    @property
    def address(self) -> str:
        return self._frames[-1][0]

    @property
    def msg_sender(self) -> str:
        return self._frames[-1][1] if self._frames else self.origin

    @property
    def storage(self) -> dict:
        return self.state['storage'].setdefault(self.address, {})

    @property
    def chain_id(self) -> int:
        return self.ledger.chain_id

    def balance_of(self, address: str) -> int:
        return self.state['balances'].get(normalize_address(address), 0)

    def transfer(self, sender: str, recipient: str, amount: int):
        if amount <= 0:
            return
        balances = self.state['balances']
        if balances.get(sender, 0) < amount:
            revert("insufficient balance")
        balances[sender] -= amount
        balances[recipient] = balances.get(recipient, 0) + amount

    def _charge(self, call_data: bytes):
        self.energy_used += BASE_CALL_ENERGY + DATA_BYTE_ENERGY * len(call_data)
        if self.energy_limit is not None and self.energy_used > self.energy_limit:
            raise ExecutionReverted(b'', "out of energy")

    def call(self, target: str, call_data: bytes, delegate: bool = False) -> bytes:
        """
        Dispatch a call to target.

        delegate=True keeps msg.sender of the current frame (self-dispatch
        of multicall).
        """
        target = normalize_address(target)
        call_data = to_bytes(call_data)
        if len(self._frames) >= MAX_CALL_DEPTH:
            raise ExecutionReverted(b'', "call depth exceeded")
        self._charge(call_data)

        program = self.ledger.program_at(target)
        if program is None:
            return b''

        sender = self.msg_sender if delegate else (self._frames[-1][0] if self._frames else self.origin)
        snapshot = copy.deepcopy(self.state)
        self._frames.append((target, sender))
        try:
            return bytes(program.dispatch(self, call_data))
        except ExecutionReverted:
            self.state.clear()
            self.state.update(snapshot)
            raise
        finally:
            self._frames.pop()


class ContractProgram:
    """
    Contract handler bound to an address.

    ROUTES maps a canonical signature to a method name. Each method gets
    the ExecutionContext and the decoded arguments and returns encoded
    return data.
    """

    ROUTES: Dict[str, str] = {}

    def __init__(self):
        self._routes = {
            function_selector(signature): (signature, getattr(self, name))
            for signature, name in self.ROUTES.items()
        }

    @staticmethod
    def returns(types, *values) -> bytes:
        return encode(list(types), list(values))

    def dispatch(self, ctx: ExecutionContext, call_data: bytes) -> bytes:
        route = self._routes.get(call_data[:4])
        if route is None:
            # нет fallback функции
            raise ExecutionReverted(b'', f"unknown selector 0x{call_data[:4].hex()}")

        signature, handler = route
        types = input_types(signature)
        if not types:
            return handler(ctx)
        try:
            args = decode_return(call_data[4:], types)
        except DecodeError as e:
            raise ExecutionReverted(b'', f"bad arguments for {signature}: {e}") from e
        return handler(ctx, *args)


class MulticallProgram(ContractProgram):
    """TronMulticall: aggregate / multicall / block helpers."""

    ROUTES = {
        "aggregate((address,bytes)[])": "aggregate",
        "multicall(bytes[])": "multicall",
        "getBlockNumber()": "get_block_number",
        "getCurrentBlockTimestamp()": "get_current_block_timestamp",
        "getChainId()": "get_chain_id",
        "getEthBalance(address)": "get_eth_balance",
    }

    def aggregate(self, ctx: ExecutionContext, raw_calls) -> bytes:
        calls = [Call(target=target, call_data=data) for target, data in raw_calls]
        results = run_batch(calls, ctx.call)
        return encode_aggregate_result(AggregateResult(ctx.block_number, results))

    def multicall(self, ctx: ExecutionContext, payloads) -> bytes:
        # любой revert откатывает весь multicall
        results = [ctx.call(ctx.address, payload, delegate=True) for payload in payloads]
        return self.returns(["bytes[]"], results)

    def get_block_number(self, ctx: ExecutionContext) -> bytes:
        return self.returns(["uint256"], ctx.block_number)

    def get_current_block_timestamp(self, ctx: ExecutionContext) -> bytes:
        return self.returns(["uint256"], ctx.timestamp)

    def get_chain_id(self, ctx: ExecutionContext) -> bytes:
        return self.returns(["uint256"], ctx.chain_id)

    def get_eth_balance(self, ctx: ExecutionContext, address: str) -> bytes:
        return self.returns(["uint256"], ctx.balance_of(address))


class LocalTransport(Transport):
    """
    In-process ledger implementing Transport.

    Usage:
        ledger = LocalTransport()
        multicall = ledger.deploy(MulticallProgram())
        data = ledger.simulate(multicall, GET_BLOCK_NUMBER.encode())
    """

    def __init__(
        self,
        chain_id: int = LOCAL_DEV.chain_id,
        start_block: int = 1,
        start_timestamp: int = 1_700_000_000,
        block_time: int = 3,
        caller: str = LOCAL_CALLER,
    ):
        self.chain_id = chain_id
        self.block_time = block_time
        self.caller = normalize_address(caller)

        self._height = start_block
        self._timestamps: Dict[int, int] = {start_block: start_timestamp}
        self._programs: Dict[str, ContractProgram] = {}
        self._state = {'storage': {}, 'balances': {}}
        self._deploy_nonce = 0
        self._connected = True

        self.transactions: List[LedgerEntry] = []

    # ── Ledger management ─────────────────────────────────────────

    def deploy(self, program: ContractProgram, deployer: Optional[str] = None) -> str:
        """Bind a program to a fresh deterministic address."""
        self._ensure_connected()
        deployer = normalize_address(deployer or self.caller)
        digest = Web3.keccak(text=f"{deployer}:{self._deploy_nonce}")
        address = normalize_address(bytes(digest[-20:]))
        self._deploy_nonce += 1

        self._programs[address] = program
        logger.info(f"Deployed {type(program).__name__} at {address}")
        return address

    def program_at(self, address: str) -> Optional[ContractProgram]:
        return self._programs.get(normalize_address(address))

    def fund(self, address: str, amount: int):
        address = normalize_address(address)
        self._state['balances'][address] = self._state['balances'].get(address, 0) + amount

    def balance_of(self, address: str) -> int:
        return self._state['balances'].get(normalize_address(address), 0)

    def storage_of(self, address: str) -> dict:
        return copy.deepcopy(self._state['storage'].get(normalize_address(address), {}))

    def mine(self, blocks: int = 1) -> int:
        """Close the current block and open the next one."""
        self._ensure_connected()
        for _ in range(blocks):
            timestamp = self._timestamps[self._height] + self.block_time
            self._height += 1
            self._timestamps[self._height] = timestamp
        return self._height

    def disconnect(self):
        self._connected = False

    def reconnect(self):
        self._connected = True

    def _ensure_connected(self):
        if not self._connected:
            raise TransportError("Local ledger is disconnected")

    def _resolve_block(self, block: BlockId) -> int:
        if block is None or block in ('latest', 'pending'):
            return self._height
        if isinstance(block, int) and block in self._timestamps:
            return block
        raise TransportError(f"Unknown block: {block!r}")

    def _run(
        self,
        state: dict,
        target: str,
        call_data: bytes,
        caller: str,
        block: int,
        energy_limit: Optional[int] = None,
        value: int = 0,
    ) -> Tuple[bytes, int]:
        ctx = ExecutionContext(
            ledger=self,
            state=state,
            block_number=block,
            timestamp=self._timestamps[block],
            caller=caller,
            energy_limit=energy_limit,
        )
        ctx.transfer(caller, normalize_address(target), value)
        return_data = ctx.call(target, call_data)
        # перерасход внутри подвызова aggregate тоже откатывает весь вызов
        if energy_limit is not None and ctx.energy_used > energy_limit:
            raise ExecutionReverted(b'', "out of energy")
        return return_data, ctx.energy_used

    # ── Transport ─────────────────────────────────────────────────

    def submit(self, target: str, call_data: bytes, options: Optional[CallOptions] = None) -> bytes:
        self._ensure_connected()
        options = options or CallOptions()
        target = normalize_address(target)
        call_data = to_bytes(call_data)

        working = copy.deepcopy(self._state)
        return_data, energy = self._run(
            working, target, call_data, self.caller, self._height,
            energy_limit=options.fee_limit, value=options.call_value,
        )

        self._state = working
        self.transactions.append(LedgerEntry(
            block_number=self._height,
            caller=self.caller,
            target=target,
            call_data=call_data,
            return_data=return_data,
            energy_used=energy,
        ))
        logger.debug(f"Committed call to {target} in block {self._height}, energy={energy}")
        return return_data

    def simulate(
        self,
        target: str,
        call_data: bytes,
        caller: Optional[str] = None,
        block: BlockId = None,
    ) -> bytes:
        self._ensure_connected()
        height = self._resolve_block(block)
        return_data, _ = self._run(
            copy.deepcopy(self._state),
            target,
            to_bytes(call_data),
            normalize_address(caller or self.caller),
            height,
        )
        return return_data

    def simulation_session(self, caller: Optional[str] = None, block: BlockId = None) -> Dispatch:
        """
        Dispatch over one throw-away copy of the state.

        Later calls see the effects of earlier ones, as in a committed
        batch; nothing reaches the ledger.
        """
        self._ensure_connected()
        height = self._resolve_block(block)
        sender = normalize_address(caller or self.caller)
        state = copy.deepcopy(self._state)

        def dispatch(target: str, call_data: bytes) -> bytes:
            self._ensure_connected()
            return_data, _ = self._run(state, target, to_bytes(call_data), sender, height)
            return return_data

        return dispatch

    def estimate_cost(self, request: EstimateRequest) -> int:
        self._ensure_connected()
        _, energy = self._run(
            copy.deepcopy(self._state),
            request.target,
            request.call_data,
            request.caller or self.caller,
            self._height,
            energy_limit=request.options.fee_limit,
            value=request.options.call_value,
        )
        return energy

    def block_number(self) -> int:
        self._ensure_connected()
        return self._height

    def block_timestamp(self, block: BlockId = None) -> int:
        self._ensure_connected()
        return self._timestamps[self._resolve_block(block)]

    def __repr__(self) -> str:
        return f"LocalTransport(block={self._height}, {len(self._programs)} programs)"
