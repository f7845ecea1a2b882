"""
Smoke test for a deployed TronMulticall.

Шаги:
1. aggregate([getBlockNumber()]) и aggregate([getCurrentBlockTimestamp()])
   на самом агрегаторе
2. оба aggregate одним multicall(bytes[])
3. декодирование вложенных результатов
4. оценка energy для батча

Запуск:
    MULTICALL_NETWORK=nile MULTICALL_ADDRESS=0x... tron-multicall-smoke
"""

import argparse
import logging
import os
import sys
from dataclasses import dataclass
from typing import Optional

from eth_account import Account

from .codec import GET_BLOCK_NUMBER, GET_CURRENT_BLOCK_TIMESTAMP, decode_aggregate_result
from .config import ENV_PRIVATE_KEY, build_web3, load_network_config, resolve_multicall_address
from .contract import MulticallContract
from .errors import MulticallError
from .transport import CallOptions, Web3Transport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SmokeReport:
    """Результат смоук-теста."""
    block_number: int          # Высота из первого вложенного aggregate
    block_number_ok: bool      # getBlockNumber() внутри батча прошёл
    decoded_block_number: int  # Декодированный getBlockNumber()
    timestamp: int             # Декодированный getCurrentBlockTimestamp()
    energy: int                # Оценка energy для multicall

    @property
    def consistent(self) -> bool:
        return self.block_number_ok and self.decoded_block_number == self.block_number and self.timestamp > 0


def run_smoke(
    contract: MulticallContract,
    caller: Optional[str] = None,
    options: Optional[CallOptions] = None,
) -> SmokeReport:
    """Смоук-тест агрегатора: multicall из двух aggregate + оценка energy."""
    call0 = contract.aggregate_call([GET_BLOCK_NUMBER.call(contract.address)])
    call1 = contract.aggregate_call([GET_CURRENT_BLOCK_TIMESTAMP.call(contract.address)])
    payloads = [call0.call_data, call1.call_data]

    results = contract.multicall(payloads, static=True, caller=caller)

    first = decode_aggregate_result(results[0])
    second = decode_aggregate_result(results[1])
    logger.info(f"blockNumber={first.block_number}, success={first[0].success}")

    decoded_block = first.decode(0, GET_BLOCK_NUMBER)
    timestamp = second.decode(0, GET_CURRENT_BLOCK_TIMESTAMP)
    logger.info(f"getBlockNumber()={decoded_block}, getCurrentBlockTimestamp()={timestamp}")

    energy = contract.estimate_multicall_cost(payloads, options=options, caller=caller)
    logger.info(f"Estimated energy for multicall: {energy}")

    return SmokeReport(
        block_number=first.block_number,
        block_number_ok=first[0].success,
        decoded_block_number=decoded_block,
        timestamp=timestamp,
        energy=energy,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tron-multicall-smoke",
        description="Smoke test for a deployed TronMulticall aggregator",
    )
    parser.add_argument("--address", help="Multicall address (overrides MULTICALL_ADDRESS)")
    parser.add_argument("--rpc-url", help="JSON-RPC endpoint (overrides MULTICALL_RPC_URL)")
    parser.add_argument("--fee-limit", type=int, default=None, help="Energy/fee ceiling")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    )

    config = load_network_config()
    if args.rpc_url:
        config.rpc_url = args.rpc_url

    try:
        address = resolve_multicall_address(config, args.address)
    except ValueError as e:
        logger.error(str(e))
        return 2

    private_key = os.getenv(ENV_PRIVATE_KEY)
    account = Account.from_key(private_key) if private_key else None

    transport = Web3Transport(build_web3(config), account)
    contract = MulticallContract(transport, address)
    options = CallOptions(fee_limit=args.fee_limit) if args.fee_limit else None

    logger.info(f"Network: {config.name} ({config.rpc_url}), multicall: {address}")
    try:
        report = run_smoke(contract, caller=account.address if account else None, options=options)
    except MulticallError as e:
        logger.error(f"Smoke test failed: {e}")
        return 1

    if not report.consistent:
        logger.error(f"Inconsistent results: {report}")
        return 1

    logger.info("Smoke test passed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
