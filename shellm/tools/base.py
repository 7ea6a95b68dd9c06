"""
Базовый контракт инструмента агента
"""
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Type

from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError

from ..utils.context import TurnContext


class ToolError(Exception):
    """Базовое исключение инструментов"""
    pass


class ToolArgumentsError(ToolError):
    """Аргументы вызова не соответствуют схеме инструмента"""
    pass


class ToolArgs(BaseModel):
    """Базовая модель аргументов: лишние поля игнорируются"""

    model_config = ConfigDict(extra='ignore')


class Tool(ABC):
    """
    Инструмент, который модель может вызвать

    Инструмент не хранит изменяемого состояния между вызовами: все, что ему
    нужно, передается при создании (например, ссылка на инвентарь).
    """

    name: str = ""
    description: str = ""
    args_model: Type[ToolArgs] = ToolArgs

    def schema(self) -> Dict[str, Any]:
        """JSON схема аргументов для декларации инструмента"""
        schema = self.args_model.model_json_schema()
        schema.pop('title', None)
        for prop in schema.get('properties', {}).values():
            prop.pop('title', None)
        schema.setdefault('properties', {})
        schema['type'] = 'object'
        return schema

    def declaration(self) -> Dict[str, Any]:
        """Декларация в формате tools для chat completions"""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.schema()
            }
        }

    def parse_arguments(self, raw_arguments: str) -> ToolArgs:
        """
        Разбор сырых аргументов вызова

        Raises:
            ToolArgumentsError: payload не JSON объект или не проходит валидацию
        """
        raw_arguments = (raw_arguments or "").strip()
        if not raw_arguments:
            data: Any = {}
        else:
            try:
                data = json.loads(raw_arguments)
            except json.JSONDecodeError as e:
                raise ToolArgumentsError(f"invalid arguments for {self.name}: {e}") from e

        if not isinstance(data, dict):
            raise ToolArgumentsError(f"invalid arguments for {self.name}: expected a JSON object")

        try:
            return self.args_model.model_validate(data)
        except PydanticValidationError as e:
            errors = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            raise ToolArgumentsError(f"invalid arguments for {self.name}: {errors}") from e

    async def invoke(self, ctx: TurnContext, raw_arguments: str) -> str:
        """Разбор аргументов и вызов инструмента"""
        return await self.call(ctx, self.parse_arguments(raw_arguments))

    @abstractmethod
    async def call(self, ctx: TurnContext, args: ToolArgs) -> str:
        """
        Выполнение инструмента

        Returns:
            Текст результата для памяти диалога

        Raises:
            Exception: любая ошибка становится наблюдением "tool error: ..."
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name='{self.name}')"
