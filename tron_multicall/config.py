"""
Configuration for TRON Multicall

Сети, адреса развёрнутых агрегаторов и параметры исполнения по умолчанию.
Переопределяется через переменные окружения (.env).
"""

import os
from dataclasses import dataclass, replace
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv
from web3 import Web3

from .calls import normalize_address


@dataclass
class NetworkConfig:
    """Конфигурация сети."""
    name: str
    chain_id: int
    rpc_url: str                 # JSON-RPC endpoint (TRON: .../jsonrpc)
    explorer_url: str
    native_token: str
    multicall: str = ""          # Адрес развёрнутого TronMulticall (hex, 0x...)


# ============================================================
# NETWORK CONFIGURATIONS
# ============================================================

TRON_MAINNET = NetworkConfig(
    name="mainnet",
    chain_id=728126428,
    rpc_url="https://api.trongrid.io/jsonrpc",
    explorer_url="https://tronscan.org",
    native_token="TRX",
)

TRON_SHASTA = NetworkConfig(
    name="shasta",
    chain_id=2494104990,
    rpc_url="https://api.shasta.trongrid.io/jsonrpc",
    explorer_url="https://shasta.tronscan.org",
    native_token="TRX",
)

TRON_NILE = NetworkConfig(
    name="nile",
    chain_id=3448148188,
    rpc_url="https://nile.trongrid.io/jsonrpc",
    explorer_url="https://nile.tronscan.org",
    native_token="TRX",
)

# tronbox/tre quickstart
LOCAL_DEV = NetworkConfig(
    name="development",
    chain_id=1,
    rpc_url="http://127.0.0.1:9090/jsonrpc",
    explorer_url="",
    native_token="TRX",
)

NETWORKS: Dict[str, NetworkConfig] = {
    cfg.name: cfg for cfg in (TRON_MAINNET, TRON_SHASTA, TRON_NILE, LOCAL_DEV)
}

# ============================================================
# DEFAULT SETTINGS
# ============================================================

DEFAULT_NETWORK = "development"
DEFAULT_FEE_LIMIT = 1_000_000_000     # 1000 TRX в sun
DEFAULT_CALL_VALUE = 0
DEFAULT_RECEIPT_TIMEOUT = 120         # секунд
DEFAULT_REQUEST_TIMEOUT = 30          # секунд, HTTP к ноде

# Переменные окружения
ENV_NETWORK = "MULTICALL_NETWORK"
ENV_RPC_URL = "MULTICALL_RPC_URL"
ENV_ADDRESS = "MULTICALL_ADDRESS"
ENV_PRIVATE_KEY = "PRIVATE_KEY"


# ============================================================
# HELPER FUNCTIONS
# ============================================================

def get_network_config(name: str) -> NetworkConfig:
    """Получение конфигурации по имени сети."""
    key = name.lower()
    if key not in NETWORKS:
        raise ValueError(f"Unknown network: {name}")
    return NETWORKS[key]


def load_network_config(env: Optional[Mapping[str, str]] = None) -> NetworkConfig:
    """
    Конфигурация сети из окружения.

    Если env не передан, читается os.environ (с подгрузкой .env).
    Пресет не мутируется - возвращается копия с переопределениями.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    config = get_network_config(env.get(ENV_NETWORK) or DEFAULT_NETWORK)

    overrides = {}
    if env.get(ENV_RPC_URL):
        overrides['rpc_url'] = env[ENV_RPC_URL]
    if env.get(ENV_ADDRESS):
        overrides['multicall'] = env[ENV_ADDRESS]
    return replace(config, **overrides)


def resolve_multicall_address(config: NetworkConfig, override: Optional[str] = None) -> str:
    """
    Адрес развёрнутого агрегатора.

    Raises:
        ValueError: агрегатор для сети не задан
    """
    address = override or config.multicall
    if not address:
        raise ValueError(
            f"No multicall address configured for {config.name}. "
            f"Set {ENV_ADDRESS} or pass it explicitly."
        )
    return normalize_address(address)


def build_web3(config: NetworkConfig, request_timeout: float = DEFAULT_REQUEST_TIMEOUT) -> Web3:
    """Web3 поверх HTTPProvider для сети."""
    return Web3(Web3.HTTPProvider(config.rpc_url, request_kwargs={'timeout': request_timeout}))
