"""
Контекст хода: сигнал отмены и дедлайн

Один TurnContext создается на каждый ход агента и передается во все запросы
к LLM и во все вызовы инструментов этого хода.
"""
import asyncio
import time
from typing import Optional


class TurnContextError(Exception):
    """Базовое исключение для завершенного контекста"""
    pass


class TurnCancelledError(TurnContextError):
    """Контекст отменен явно"""

    def __init__(self, message: str = "context canceled"):
        super().__init__(message)


class TurnTimeoutError(TurnContextError):
    """Истек дедлайн контекста"""

    def __init__(self, message: str = "context deadline exceeded"):
        super().__init__(message)


class TurnContext:
    """Отменяемый контекст с необязательным дедлайном"""

    def __init__(self, timeout: Optional[float] = None):
        """
        Args:
            timeout: Время жизни контекста в секундах (None - без дедлайна)
        """
        self.timeout = timeout
        self.deadline: Optional[float] = time.monotonic() + timeout if timeout is not None else None
        self._cancelled = asyncio.Event()
        self._error: Optional[TurnContextError] = None

    def cancel(self):
        """Отменить контекст. Повторные вызовы ничего не делают."""
        if self._error is None:
            self._error = TurnCancelledError()
        self._cancelled.set()

    def remaining(self) -> Optional[float]:
        """Оставшееся до дедлайна время в секундах (None - без дедлайна)"""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def done(self) -> bool:
        """Отменен ли контекст или истек ли дедлайн"""
        if self._cancelled.is_set():
            return True
        if self.deadline is not None and time.monotonic() >= self.deadline:
            self._expire()
            return True
        return False

    @property
    def error(self) -> Optional[TurnContextError]:
        """Причина завершения контекста или None, если он еще активен"""
        self.done()
        return self._error

    async def wait(self) -> TurnContextError:
        """Ждет отмены или дедлайна и возвращает причину"""
        if not self.done():
            try:
                await asyncio.wait_for(self._cancelled.wait(), timeout=self.remaining())
            except asyncio.TimeoutError:
                self._expire()
        return self._error

    def _expire(self):
        if self._error is None:
            self._error = TurnTimeoutError()
        self._cancelled.set()

    def __repr__(self) -> str:
        state = "done" if self.done() else "active"
        return f"TurnContext(timeout={self.timeout}, state={state})"
