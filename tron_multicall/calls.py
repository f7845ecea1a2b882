"""
Call / CallResult / AggregateResult

Структуры данных мультивызова. Все объекты создаются на один вызов
aggregate и нигде не сохраняются.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple, Union

from web3 import Web3

from .errors import InvalidTargetError, SubCallFailure

# TRON hex-адрес: 0x41 + 20 байт
TRON_ADDRESS_PREFIX = "41"

AddressLike = Union[str, bytes, bytearray]


def normalize_address(value: AddressLike) -> str:
    """
    Привести адрес к checksum формату.

    Принимает:
        - "0x" + 40 hex символов
        - 20 сырых байт
        - TRON hex адрес ("41" + 40 hex символов), как его отдаёт tronbox

    Raises:
        InvalidTargetError: если адрес синтаксически неверен
    """
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise InvalidTargetError(value, f"Address must be 20 bytes, got {len(value)}")
        return Web3.to_checksum_address("0x" + bytes(value).hex())

    if not isinstance(value, str):
        raise InvalidTargetError(value)

    candidate = value.strip()
    if len(candidate) == 42 and candidate[:2] == TRON_ADDRESS_PREFIX:
        candidate = "0x" + candidate[2:]

    if not Web3.is_address(candidate):
        raise InvalidTargetError(value)

    checksummed = Web3.to_checksum_address(candidate)
    # смешанный регистр = EIP-55 checksum, он должен сойтись
    body = candidate[2:] if candidate[:2].lower() == "0x" else candidate
    if body != body.lower() and body != body.upper() and checksummed[2:] != body:
        raise InvalidTargetError(value, f"Bad address checksum: {value!r}")
    return checksummed


def to_bytes(data: Union[bytes, bytearray, str, None]) -> bytes:
    """bytes или hex-строка (с 0x или без) -> bytes."""
    if data is None:
        return b''
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str):
        hex_data = data[2:] if data[:2].lower() == "0x" else data
        try:
            return bytes.fromhex(hex_data)
        except ValueError as e:
            raise ValueError(f"call_data is not valid hex: {data[:20]}...") from e
    raise TypeError(f"Unsupported call_data type: {type(data).__name__}")


@dataclass(frozen=True)
class Call:
    """Один вызов батча: адрес цели и закодированные данные вызова."""
    target: str
    call_data: bytes = b''

    def __post_init__(self):
        object.__setattr__(self, 'target', normalize_address(self.target))
        object.__setattr__(self, 'call_data', to_bytes(self.call_data))

    @property
    def selector(self) -> bytes:
        return self.call_data[:4]

    def to_tuple(self) -> tuple:
        return (self.target, self.call_data)

    @classmethod
    def coerce(cls, value) -> 'Call':
        """Call или пара (target, call_data) -> Call."""
        if isinstance(value, cls):
            return value
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return cls(target=value[0], call_data=value[1])
        raise InvalidTargetError(value, f"Expected Call or (target, call_data), got {value!r}")


@dataclass(frozen=True)
class CallResult:
    """Результат одного подвызова."""
    success: bool
    return_data: bytes = b''

    @property
    def revert_reason(self) -> Optional[str]:
        """Текст Error(string) / Panic(uint256) для неуспешного вызова."""
        if self.success:
            return None
        from .codec import decode_revert_reason
        return decode_revert_reason(self.return_data)

    def decode(self, shape):
        """
        Декодирование return_data.

        Args:
            shape: CallShape или последовательность ABI типов

        Raises:
            DecodeError: если байты не соответствуют форме
        """
        from .codec import decode_shape
        return decode_shape(self.return_data, shape)

    def to_tuple(self) -> tuple:
        return (self.success, self.return_data)


@dataclass(frozen=True)
class AggregateResult:
    """Результат aggregate: высота блока и результаты в порядке вызовов."""
    block_number: int
    return_data: Tuple[CallResult, ...] = field(default_factory=tuple)
    block_timestamp: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, 'return_data', tuple(self.return_data))

    def __len__(self) -> int:
        return len(self.return_data)

    def __iter__(self) -> Iterator[CallResult]:
        return iter(self.return_data)

    def __getitem__(self, index: int) -> CallResult:
        return self.return_data[index]

    @property
    def all_succeeded(self) -> bool:
        return all(r.success for r in self.return_data)

    def failures(self) -> List[Tuple[int, CallResult]]:
        return [(i, r) for i, r in enumerate(self.return_data) if not r.success]

    def decode(self, index: int, shape):
        return self.return_data[index].decode(shape)

    def raise_for_failures(self):
        """Выбросить SubCallFailure для первого провалившегося подвызова."""
        for index, result in self.failures():
            raise SubCallFailure(index, result.return_data, result.revert_reason)
        return self
