"""
Память диалога агента

Память - это упорядоченный журнал, который целиком отправляется в LLM на
каждом раунде, поэтому записи только добавляются и никогда не удаляются.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple


class Role(Enum):
    """Роль записи в памяти"""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ConversationError(Exception):
    """Нарушение инварианта памяти диалога"""
    pass


@dataclass(frozen=True)
class ActionInvocation:
    """Вызов инструмента, предложенный моделью"""

    name: str
    arguments: str
    call_id: str

    def render(self) -> str:
        """Представление для журнала событий: name(args)"""
        return f"{self.name}({self.arguments})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.call_id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments}
        }


@dataclass(frozen=True)
class MemoryEntry:
    """Одна запись памяти"""

    role: Role
    content: str
    action: Optional[ActionInvocation] = None
    tool_call_id: Optional[str] = None

    def to_message(self) -> Dict[str, Any]:
        """Сообщение в формате chat completions"""
        message: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.action is not None:
            message["tool_calls"] = [self.action.to_dict()]
            if not self.content:
                message["content"] = None
        if self.tool_call_id is not None:
            message["tool_call_id"] = self.tool_call_id
        return message


class ConversationMemory:
    """Журнал сообщений диалога: только добавление"""

    def __init__(self, system_prompt: str):
        self._entries: List[MemoryEntry] = [MemoryEntry(Role.SYSTEM, system_prompt)]
        # id вызова, который ожидает результата
        self._pending_call_id: Optional[str] = None

    @property
    def system_prompt(self) -> str:
        return self._entries[0].content

    @property
    def entries(self) -> Tuple[MemoryEntry, ...]:
        return tuple(self._entries)

    @property
    def pending_call_id(self) -> Optional[str]:
        return self._pending_call_id

    def add_user(self, text: str) -> MemoryEntry:
        return self._append(MemoryEntry(Role.USER, text))

    def add_assistant(self, text: str, action: Optional[ActionInvocation] = None) -> MemoryEntry:
        entry = self._append(MemoryEntry(Role.ASSISTANT, text or "", action=action))
        self._pending_call_id = action.call_id if action is not None else None
        return entry

    def add_action_result(self, call_id: str, text: str) -> MemoryEntry:
        """
        Результат инструмента

        Raises:
            ConversationError: если call_id не совпадает с ожидающим вызовом
        """
        if self._pending_call_id is None or call_id != self._pending_call_id:
            raise ConversationError(
                f"action result '{call_id}' does not answer a pending action "
                f"(pending: {self._pending_call_id!r})"
            )
        entry = self._append(MemoryEntry(Role.TOOL, text, tool_call_id=call_id))
        self._pending_call_id = None
        return entry

    def to_messages(self) -> List[Dict[str, Any]]:
        """Весь журнал в формате chat completions"""
        return [entry.to_message() for entry in self._entries]

    def last(self) -> MemoryEntry:
        return self._entries[-1]

    def _append(self, entry: MemoryEntry) -> MemoryEntry:
        self._entries.append(entry)
        return entry

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[MemoryEntry]:
        return iter(tuple(self._entries))
