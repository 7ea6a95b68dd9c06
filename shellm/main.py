"""
Main entry point for SheLLM.

This module wires configuration, logging, inventory, tools, the LLM
interface and the ReAct agent together.
"""

import asyncio
from typing import Optional, Dict, Any, List, Tuple

from .config.agent_config import AgentConfig
from .config.inventory import Inventory
from .agents.react_agent import ReActAgent, AgentBusyError
from .models.events import AgentEvent, EventStream
from .models.llm_interface import LLMInterface, LLMInterfaceFactory
from .tools import ToolRegistry, ReportTool, PingTool, GetHostsTool, ExecuteCommandTool
from .utils.context import TurnContext
from .utils.logger import LoggerSetup, StructuredLogger


def build_registry(config: AgentConfig, inventory: Inventory) -> ToolRegistry:
    """Реестр из четырех инструментов, разделяющих один инвентарь"""
    return ToolRegistry([
        ReportTool(),
        PingTool(config.tools),
        GetHostsTool(inventory),
        ExecuteCommandTool(inventory, config.ssh)
    ])


class ShellmApp:
    """
    Приложение SheLLM: один агент, один диалог

    Основные возможности:
    - Загрузка конфигурации и инвентаря
    - Настройка логирования
    - Запуск ходов агента с отдельным контекстом на каждый ход
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        config: Optional[AgentConfig] = None,
        mock_mode: bool = False,
        llm: Optional[LLMInterface] = None,
        inventory: Optional[Inventory] = None,
        setup_logging: bool = True
    ):
        """
        Инициализация приложения

        Args:
            config_path: Путь к файлу конфигурации
            config: Готовая конфигурация (вместо файла)
            mock_mode: Использовать мок-интерфейс LLM
            llm: Готовый интерфейс LLM
            inventory: Готовый инвентарь (вместо файлов)
            setup_logging: Настраивать ли loguru
        """
        self.config = config or AgentConfig.load(config_path)

        if setup_logging:
            LoggerSetup(self.config.logging.model_dump())
        self.logger = StructuredLogger("ShellmApp")

        if inventory is None:
            inventory = Inventory.load(
                self.config.inventory.inventory_path,
                self.config.inventory.secrets_path
            )
        self.inventory = inventory

        self.registry = build_registry(self.config, self.inventory)
        self.llm = llm or LLMInterfaceFactory.create_interface(
            self.config.llm,
            mock_mode=mock_mode
        )
        self.agent = ReActAgent(self.llm, self.registry, self.config)
        self.turns = 0
        self._current_task: Optional[asyncio.Future] = None

        self.logger.info(
            "SheLLM инициализирован",
            hosts=len(self.inventory),
            tools=self.registry.names(),
            mock_mode=mock_mode
        )

    def new_context(self, timeout: Optional[float] = None) -> TurnContext:
        """Контекст хода с таймаутом из конфигурации"""
        return TurnContext(timeout if timeout is not None else self.config.agent.turn_timeout)

    def run_turn(self, text: str, ctx: Optional[TurnContext] = None) -> Tuple[EventStream, TurnContext, asyncio.Task]:
        """
        Запуск хода в отдельной задаче

        Returns:
            (поток событий, контекст хода, задача агента)

        Raises:
            AgentBusyError: если предыдущий ход еще не завершен
        """
        # Задача хода может быть еще не запущена, а флаг агента еще не выставлен
        if self.agent.running or (self._current_task is not None and not self._current_task.done()):
            raise AgentBusyError("agent is already running a turn")
        ctx = ctx or self.new_context()
        events = EventStream()
        task = asyncio.ensure_future(self.agent.start(ctx, text, events))
        self._current_task = task
        self.turns += 1
        return events, ctx, task

    async def ask(self, text: str, ctx: Optional[TurnContext] = None) -> List[AgentEvent]:
        """Выполнить ход целиком и вернуть все его события"""
        events, ctx, task = self.run_turn(text, ctx)
        collected = [event async for event in events]
        await task
        return collected

    def get_status(self) -> Dict[str, Any]:
        """Статус приложения"""
        stats = self.agent.get_stats()
        return {
            "model": self.config.llm.model,
            "hosts": len(self.inventory),
            "tools": self.registry.names(),
            "turns": self.turns,
            "total_tokens": stats.total_tokens,
            "completion_rounds": stats.completion_rounds
        }


def main():
    """Main entry point."""
    from .cli import main as cli_main
    cli_main()


if __name__ == "__main__":
    main()
