"""
ReAct агент: цикл рассуждений и действий

На каждом раунде агент отправляет в LLM всю память диалога и декларации
инструментов, выполняет не больше одного предложенного вызова и складывает
результат обратно в память. Ход заканчивается вызовом report, фатальной
ошибкой LLM или исчерпанием лимита итераций.
"""
import asyncio
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from ..config.agent_config import AgentConfig
from ..models.conversation import ActionInvocation, ConversationMemory
from ..models.events import (
    EventStream, ReasoningStep, ActionProposed, ActionOutcome,
    TokenUsageUpdated, FinalAnswer, FatalError
)
from ..models.llm_interface import LLMInterface, LLMRequestBuilder, LLMResponse
from ..tools.registry import ToolRegistry
from ..utils.context import TurnContext, TurnCancelledError
from ..utils.logger import StructuredLogger


SYSTEM_PROMPT = """You are a ReAct agent called "SheLLM" whose goal is to help user to control his SSH hosts. You have 10+ years of experience in Linux administration and DevOps.

Loop (strict):
1) Thought: 1-2 short sentences (high-level, factual, no speculation). State only the immediate next step and the name of the tool you will call. Do NOT invent facts, credentials, or outcomes in the Thought.
2) Action: call exactly ONE tool with a single JSON argument (the tool invocation will be produced by the assistant).
3) Observation: process the tool's output and continue the loop.

Rules:
- Use ONLY ONE tool per Action.
- If a tool returns an error or an unknown tool is requested, report it in the Observation and continue.
- When you want to finish, call the tool named "report" with JSON following its schema; do not output the report in plain text.
- Keep Thoughts concise and actionable.
- If user dont ask you a task - just answer him with report tool
- Use markdown syntax for answer provided to "report" tool"""

REPORT_TOOL = "report"
MAX_ITERATIONS_MESSAGE = "failed: max iterations reached"


class AgentState(Enum):
    """Состояние цикла агента"""
    AWAITING_COMPLETION = "awaiting_completion"
    DISPATCHING_ACTION = "dispatching_action"
    TERMINATED = "terminated"


class AgentBusyError(Exception):
    """Ход уже выполняется"""
    pass


class CompletionError(Exception):
    """Неустранимая ошибка запроса к LLM"""
    pass


@dataclass
class UsageStats:
    """Статистика использования LLM"""

    total_tokens: int = 0
    completion_rounds: int = 0


class ReActAgent:
    """
    Агент, управляющий одним диалогом

    Память и статистика принадлежат только этому агенту и меняются только
    его циклом, поэтому одновременно может выполняться не больше одного хода.
    """

    def __init__(self, llm: LLMInterface, registry: ToolRegistry, config: Optional[AgentConfig] = None,
                 system_prompt: str = SYSTEM_PROMPT):
        """
        Args:
            llm: Интерфейс LLM
            registry: Реестр инструментов
            config: Конфигурация приложения
            system_prompt: Системный промпт (первая запись памяти)
        """
        self.config = config or AgentConfig()
        self.llm = llm
        self.registry = registry
        self.max_iterations = self.config.agent.max_iterations

        self._memory = ConversationMemory(system_prompt)
        self.stats = UsageStats()
        self.state = AgentState.AWAITING_COMPLETION
        self._running = False

        self.request_builder = (
            LLMRequestBuilder(self.config.llm.model, self.config.llm.temperature)
            .with_max_tokens(self.config.llm.max_tokens)
            .with_tools(registry.declarations())
        )
        self.logger = StructuredLogger("ReActAgent")

        self.logger.info(
            "ReAct агент инициализирован",
            model=self.config.llm.model,
            max_iterations=self.max_iterations,
            tools=registry.names()
        )

    @property
    def memory(self) -> ConversationMemory:
        return self._memory

    @property
    def running(self) -> bool:
        return self._running

    def get_stats(self) -> UsageStats:
        """Копия статистики использования"""
        return replace(self.stats)

    async def start(self, ctx: TurnContext, user_message: str, events: EventStream):
        """
        Выполнение одного хода диалога

        Все наблюдаемые переходы отправляются в events; поток закрывается
        ровно один раз при выходе из цикла на любом пути.

        Raises:
            AgentBusyError: если предыдущий ход еще не завершен
        """
        if self._running:
            raise AgentBusyError("agent is already running a turn")
        self._running = True

        start_time = time.time()
        iterations = 0
        self.logger.log_turn_start(user_message, self.max_iterations)

        try:
            iterations = await self._run_loop(ctx, user_message, events)
        except asyncio.CancelledError:
            if events.terminal_event is None:
                await events.emit(FatalError(TurnCancelledError("turn task cancelled")))
            raise
        except Exception as e:
            self.logger.error("Непредвиденная ошибка в цикле агента", error=str(e))
            if events.terminal_event is None:
                await events.emit(FatalError(e))
        finally:
            self.state = AgentState.TERMINATED
            self._running = False
            events.close()

            terminal = events.terminal_event
            self.logger.log_turn_end(
                outcome=type(terminal).__name__ if terminal is not None else "none",
                iterations=iterations,
                total_tokens=self.stats.total_tokens,
                duration=time.time() - start_time
            )

    async def _run_loop(self, ctx: TurnContext, user_message: str, events: EventStream) -> int:
        """Цикл раундов; возвращает число выполненных раундов"""
        self._memory.add_user(user_message)

        for iteration in range(1, self.max_iterations + 1):
            self.state = AgentState.AWAITING_COMPLETION

            response = await self._complete(ctx)
            if not response.success:
                self.logger.error("Ошибка запроса к LLM", error=response.error, iteration=iteration)
                await events.emit(FatalError(CompletionError(response.error or "empty completion")))
                return iteration

            self.stats.completion_rounds += 1
            self.stats.total_tokens += response.total_tokens
            await events.emit(TokenUsageUpdated(self.stats.total_tokens))

            action = self._select_action(response)
            content = response.content or ""

            if content or action is not None:
                await events.emit(ReasoningStep(content))
                self._memory.add_assistant(content, action)

            if action is None:
                # Модель может подумать без действия; это просто потраченная итерация
                continue

            self.state = AgentState.DISPATCHING_ACTION
            await events.emit(ActionProposed(action.name, action.arguments))

            result, failed = await self._dispatch(ctx, action)
            self._memory.add_action_result(action.call_id, result)
            await events.emit(ActionOutcome(result))

            if action.name == REPORT_TOOL and not failed:
                self._memory.add_assistant(result)
                await events.emit(FinalAnswer(result))
                return iteration

        self.logger.warning("Достигнут лимит итераций", max_iterations=self.max_iterations)
        await events.emit(FinalAnswer(MAX_ITERATIONS_MESSAGE))
        return self.max_iterations

    async def _complete(self, ctx: TurnContext) -> LLMResponse:
        """Один запрос к LLM в рабочем потоке"""
        if ctx.done():
            return LLMResponse(success=False, error=str(ctx.error))

        request = self.request_builder.build(self._memory.to_messages(), timeout=ctx.remaining())
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.llm.generate_response, request)

    def _select_action(self, response: LLMResponse) -> Optional[ActionInvocation]:
        """Выполняется только первый предложенный вызов, остальные отбрасываются"""
        if not response.tool_calls:
            return None
        if len(response.tool_calls) > 1:
            dropped = [call.name for call in response.tool_calls[1:]]
            self.logger.warning("Отброшены дополнительные вызовы инструментов", dropped=dropped)
        return response.tool_calls[0]

    async def _dispatch(self, ctx: TurnContext, action: ActionInvocation):
        """Вызов инструмента; возвращает (текст результата, была ли ошибка)"""
        tool = self.registry.get(action.name)
        if tool is None:
            self.logger.warning("Неизвестный инструмент", tool=action.name)
            return f"unknown tool: {action.name}", True

        start_time = time.time()
        try:
            result = await tool.invoke(ctx, action.arguments)
        except Exception as e:
            self.logger.log_tool_call(action.name, False, time.time() - start_time)
            self.logger.debug("Ошибка инструмента", tool=action.name, error=str(e))
            return f"tool error: {e}", True

        self.logger.log_tool_call(action.name, True, time.time() - start_time, len(result))
        return result, False

    def __str__(self) -> str:
        return f"ReActAgent(state={self.state.value}, memory={len(self._memory)})"

    def __repr__(self) -> str:
        return f"ReActAgent(state={self.state.value}, stats={self.stats})"
