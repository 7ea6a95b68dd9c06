"""
События агента и поток событий для UI

Агент - единственный производитель, UI - единственный потребитель. Порядок
событий внутри хода значим; последним событием хода всегда является
FinalAnswer или FatalError, после чего поток закрывается ровно один раз.
"""
import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional


@dataclass(frozen=True)
class AgentEvent:
    """Базовый класс событий агента"""

    terminal = False


@dataclass(frozen=True)
class ReasoningStep(AgentEvent):
    """Рассуждение модели (может быть пустым, если модель сразу вызвала инструмент)"""
    text: str


@dataclass(frozen=True)
class ActionProposed(AgentEvent):
    """Модель предложила вызов инструмента"""
    name: str
    arguments: str

    def render(self) -> str:
        return f"{self.name}({self.arguments})"


@dataclass(frozen=True)
class ActionOutcome(AgentEvent):
    """Результат или ошибка инструмента"""
    text: str


@dataclass(frozen=True)
class TokenUsageUpdated(AgentEvent):
    """Накопленное количество токенов"""
    total: int


@dataclass(frozen=True)
class FinalAnswer(AgentEvent):
    """Итоговый ответ пользователю"""
    text: str

    terminal = True


@dataclass(frozen=True)
class FatalError(AgentEvent):
    """Неустранимая ошибка, ход прерван"""
    error: Exception

    terminal = True

    @property
    def text(self) -> str:
        return str(self.error)


class EventStreamClosedError(Exception):
    """Запись в закрытый поток или повторное закрытие"""
    pass


_CLOSED = object()


class EventStream:
    """Однонаправленная очередь событий с явным закрытием"""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._terminated = False
        self.history: List[AgentEvent] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def terminal_event(self) -> Optional[AgentEvent]:
        """Последнее событие хода, если оно уже было отправлено"""
        if self._terminated:
            return self.history[-1]
        return None

    async def emit(self, event: AgentEvent):
        """Отправить событие потребителю"""
        if self._closed:
            raise EventStreamClosedError(f"cannot emit {type(event).__name__}: stream is closed")
        if self._terminated:
            raise EventStreamClosedError(f"cannot emit {type(event).__name__} after a terminal event")
        if event.terminal:
            self._terminated = True
        self.history.append(event)
        await self._queue.put(event)

    def close(self):
        """Закрыть поток. Закрыть поток можно только один раз."""
        if self._closed:
            raise EventStreamClosedError("stream is already closed")
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def get(self) -> Optional[AgentEvent]:
        """Следующее событие или None, если поток закрыт"""
        item = await self._queue.get()
        if item is _CLOSED:
            # Повторные вызовы после закрытия тоже получают None
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def __aiter__(self) -> AsyncIterator[AgentEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[AgentEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event
