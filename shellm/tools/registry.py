"""
Реестр инструментов агента
"""
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .base import Tool


class ToolRegistry:
    """Неизменяемый после создания каталог инструментов"""

    def __init__(self, tools: Iterable[Tool]):
        registry: Dict[str, Tool] = {}
        for tool in tools:
            if not tool.name:
                raise ValueError(f"tool {tool!r} has no name")
            if tool.name in registry:
                raise ValueError(f"duplicate tool name: {tool.name}")
            registry[tool.name] = tool
        self._tools = MappingProxyType(registry)

    def get(self, name: str) -> Optional[Tool]:
        """Инструмент по имени или None"""
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def declarations(self) -> List[Dict[str, Any]]:
        """Декларации всех инструментов для запроса к LLM"""
        return [tool.declaration() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def __repr__(self) -> str:
        return f"ToolRegistry({', '.join(self._tools)})"
