"""
Иерархия исключений мультивызова.

Ошибки отдельного подвызова записываются в результат батча и наружу
не выбрасываются. Наружу уходят только ошибки входных данных
(InvalidTargetError) и транспорта (TransportError).
"""

from typing import Optional


class MulticallError(Exception):
    """Базовая ошибка мультивызова."""
    pass


class InvalidTargetError(MulticallError, ValueError):
    """Синтаксически неверный адрес в Call."""

    def __init__(self, target, message: str = None):
        self.target = target
        super().__init__(message or f"Invalid target address: {target!r}")


class ExecutionReverted(MulticallError):
    """Вызов откатился (revert, нехватка energy, неизвестный селектор)."""

    def __init__(self, data: bytes = b'', reason: Optional[str] = None):
        self.data = bytes(data or b'')
        self.reason = reason
        message = "execution reverted"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class SubCallFailure(ExecutionReverted):
    """Провалившийся подвызов батча под номером index."""

    def __init__(self, index: int, data: bytes = b'', reason: Optional[str] = None):
        self.index = index
        super().__init__(data, reason)

    def __str__(self):
        return f"Call #{self.index} failed: {super().__str__()}"


class DecodeError(MulticallError, ValueError):
    """Байты ответа не соответствуют ожидаемой форме."""
    pass


class TransportError(MulticallError):
    """Среда исполнения недоступна или вернула ошибку протокола."""
    pass
