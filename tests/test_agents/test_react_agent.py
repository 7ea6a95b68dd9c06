"""
Тесты для ReAct агента
"""
import asyncio
import json
import threading
import pytest
from unittest.mock import Mock, patch

from shellm.agents.react_agent import (
    ReActAgent, AgentState, AgentBusyError, CompletionError,
    MAX_ITERATIONS_MESSAGE, SYSTEM_PROMPT
)
from shellm.config.agent_config import AgentConfig, ReActConfig
from shellm.models.conversation import ActionInvocation, Role
from shellm.models.events import (
    EventStream, ReasoningStep, ActionProposed, ActionOutcome,
    TokenUsageUpdated, FinalAnswer, FatalError
)
from shellm.models.llm_interface import LLMResponse
from shellm.tools import Tool, ToolArgs, ToolRegistry, ReportTool, GetHostsTool, ExecuteCommandTool
from shellm.utils.context import TurnContext, TurnCancelledError


async def run_turn(agent, text, ctx=None):
    """Выполнить ход и собрать все события"""
    events = EventStream()
    await agent.start(ctx or TurnContext(30), text, events)
    assert events.closed
    return [event async for event in events]


class BlockingTool(Tool):
    """Инструмент, который ждет явного освобождения"""

    name = "block"
    description = "Blocks until released"
    args_model = ToolArgs

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def call(self, ctx, args):
        self.started.set()
        await self.release.wait()
        return "released"


class HangingChannel:
    """Канал paramiko, чтение из которого ждет закрытия канала"""

    def __init__(self):
        self.closed = threading.Event()
        self.commands = []
        self.remote_chanid = 3
        self.transport = Mock()

    def set_combine_stderr(self, combine):
        pass

    def exec_command(self, command):
        self.commands.append(command)

    def recv(self, nbytes):
        self.closed.wait(5)
        return b""

    def recv_exit_status(self):
        return -1

    def close(self):
        self.closed.set()


class TestReActAgent:
    """Тесты для цикла рассуждений"""

    @pytest.fixture
    def connector_factory(self, mock_ssh_connector):
        return Mock(return_value=mock_ssh_connector)

    @pytest.fixture
    def registry(self, sample_inventory, connector_factory):
        return ToolRegistry([
            ReportTool(),
            GetHostsTool(sample_inventory),
            ExecuteCommandTool(sample_inventory, connector_factory=connector_factory)
        ])

    @pytest.fixture
    def make_agent(self, registry, mock_agent_config):
        def _make(llm, max_iterations=None):
            config = mock_agent_config
            if max_iterations is not None:
                config = config.model_copy(update={"agent": ReActConfig(max_iterations=max_iterations)})
            return ReActAgent(llm, registry, config)
        return _make

    def test_agent_initialization(self, make_agent, scripted_llm):
        """Тест инициализации агента"""
        agent = make_agent(scripted_llm())

        assert agent.state == AgentState.AWAITING_COMPLETION
        assert agent.running is False
        assert len(agent.memory) == 1
        assert agent.memory.entries[0].role == Role.SYSTEM
        assert agent.memory.system_prompt == SYSTEM_PROMPT
        assert agent.get_stats().total_tokens == 0

    @pytest.mark.asyncio
    async def test_report_ends_turn(self, make_agent, scripted_llm, tool_call_response):
        """Тест: вызов report дает ровно один FinalAnswer и завершает ход"""
        llm = scripted_llm(tool_call_response("report", {"text": "All good"}, tokens=42))
        agent = make_agent(llm)

        events = await run_turn(agent, "hello")

        assert events == [
            TokenUsageUpdated(42),
            ReasoningStep(""),
            ActionProposed("report", json.dumps({"text": "All good"})),
            ActionOutcome("All good"),
            FinalAnswer("All good"),
        ]
        assert llm.request_count == 1
        assert agent.state == AgentState.TERMINATED
        assert agent.memory.last().role == Role.ASSISTANT
        assert agent.memory.last().content == "All good"

    @pytest.mark.asyncio
    async def test_max_iterations_reached(self, make_agent, scripted_llm, text_response):
        """Тест: лимит итераций ограничивает число запросов к LLM"""
        llm = scripted_llm(*[text_response("still thinking") for _ in range(3)])
        agent = make_agent(llm, max_iterations=3)

        events = await run_turn(agent, "do something")

        assert llm.request_count == 3
        final_answers = [e for e in events if isinstance(e, FinalAnswer)]
        assert final_answers == [FinalAnswer(MAX_ITERATIONS_MESSAGE)]
        assert events[-1] == FinalAnswer(MAX_ITERATIONS_MESSAGE)
        assert [e for e in events if isinstance(e, ReasoningStep)] == [ReasoningStep("still thinking")] * 3

    @pytest.mark.asyncio
    async def test_unknown_tool_is_recoverable(self, make_agent, scripted_llm, tool_call_response):
        """Тест: неизвестный инструмент не завершает ход"""
        llm = scripted_llm(
            tool_call_response("format_disk", {"device": "/dev/sda"}),
            tool_call_response("report", {"text": "done"})
        )
        agent = make_agent(llm)

        events = await run_turn(agent, "wipe it")

        assert ActionOutcome("unknown tool: format_disk") in events
        assert llm.request_count == 2
        assert events[-1] == FinalAnswer("done")

        tool_entries = [e for e in agent.memory if e.role == Role.TOOL]
        assert tool_entries[0].content == "unknown tool: format_disk"
        assert tool_entries[0].tool_call_id == "call_format_disk"

    @pytest.mark.asyncio
    async def test_tool_error_is_recoverable(self, make_agent, scripted_llm, tool_call_response):
        """Тест: ошибка инструмента становится наблюдением"""
        llm = scripted_llm(
            tool_call_response("execute_command", {"host_id": "missing", "command": "uptime"}),
            tool_call_response("report", {"text": "host is missing"})
        )
        agent = make_agent(llm)

        events = await run_turn(agent, "uptime on missing")

        assert ActionOutcome("tool error: Host with ID 'missing' does not exist") in events
        assert events[-1] == FinalAnswer("host is missing")

    @pytest.mark.asyncio
    async def test_invalid_report_arguments_do_not_end_turn(self, make_agent, scripted_llm, tool_call_response):
        """Тест: report с невалидными аргументами не завершает ход"""
        llm = scripted_llm(
            tool_call_response("report", {"message": "wrong field"}),
            tool_call_response("report", {"text": "fixed"})
        )
        agent = make_agent(llm)

        events = await run_turn(agent, "hi")

        outcomes = [e for e in events if isinstance(e, ActionOutcome)]
        assert outcomes[0].text.startswith("tool error: invalid arguments for report")
        assert [e for e in events if isinstance(e, FinalAnswer)] == [FinalAnswer("fixed")]

    @pytest.mark.asyncio
    async def test_llm_failure_is_fatal(self, make_agent, scripted_llm):
        """Тест: ошибка LLM завершает ход событием FatalError"""
        llm = scripted_llm(LLMResponse(success=False, error="API error: 500 - boom"))
        agent = make_agent(llm)

        events = await run_turn(agent, "hello")

        assert len(events) == 1
        assert isinstance(events[0], FatalError)
        assert isinstance(events[0].error, CompletionError)
        assert events[0].text == "API error: 500 - boom"
        assert llm.request_count == 1

    @pytest.mark.asyncio
    async def test_cancelled_context_is_fatal(self, make_agent, scripted_llm):
        """Тест: отмененный контекст не отправляет запросов к LLM"""
        llm = scripted_llm()
        agent = make_agent(llm)
        ctx = TurnContext(30)
        ctx.cancel()

        events = await run_turn(agent, "hello", ctx)

        assert len(events) == 1
        assert isinstance(events[0], FatalError)
        assert events[0].text == "context canceled"
        assert llm.request_count == 0

    @pytest.mark.asyncio
    async def test_only_first_tool_call_is_executed(self, make_agent, scripted_llm, tool_call_response,
                                                    connector_factory):
        """Тест: дополнительные вызовы отбрасываются"""
        extra = ActionInvocation(
            name="execute_command",
            arguments=json.dumps({"host_id": "db1", "command": "reboot"}),
            call_id="call_extra"
        )
        llm = scripted_llm(
            tool_call_response("get_hosts", {}, extra_calls=[extra]),
            tool_call_response("report", {"text": "listed"})
        )
        agent = make_agent(llm)

        events = await run_turn(agent, "list hosts")

        connector_factory.assert_not_called()
        proposed = [e for e in events if isinstance(e, ActionProposed)]
        assert [p.name for p in proposed] == ["get_hosts", "report"]

        assistant_actions = [e.action for e in agent.memory if e.role == Role.ASSISTANT and e.action]
        assert all(action.call_id != "call_extra" for action in assistant_actions)

    @pytest.mark.asyncio
    async def test_token_usage_accumulates(self, make_agent, scripted_llm, tool_call_response, text_response):
        """Тест: статистика токенов накапливается по раундам"""
        llm = scripted_llm(
            text_response("thinking", tokens=10),
            tool_call_response("report", {"text": "ok"}, tokens=15)
        )
        agent = make_agent(llm)

        events = await run_turn(agent, "hi")

        usage = [e.total for e in events if isinstance(e, TokenUsageUpdated)]
        assert usage == [10, 25]

        stats = agent.get_stats()
        assert stats.total_tokens == 25
        assert stats.completion_rounds == 2

        stats.total_tokens = 0
        assert agent.get_stats().total_tokens == 25

    @pytest.mark.asyncio
    async def test_usage_update_precedes_action_outcome(self, make_agent, scripted_llm, tool_call_response):
        """Тест: порядок событий внутри раунда"""
        llm = scripted_llm(
            tool_call_response("get_hosts", {}, content="Listing hosts"),
            tool_call_response("report", {"text": "ok"})
        )
        agent = make_agent(llm)

        events = await run_turn(agent, "hosts?")

        kinds = [type(e).__name__ for e in events[:4]]
        assert kinds == ["TokenUsageUpdated", "ReasoningStep", "ActionProposed", "ActionOutcome"]
        assert events[1] == ReasoningStep("Listing hosts")

    @pytest.mark.asyncio
    async def test_check_disk_space_scenario(self, make_agent, scripted_llm, tool_call_response,
                                             connector_factory, mock_ssh_connector):
        """Тест: сценарий проверки диска на db1"""
        llm = scripted_llm(
            tool_call_response("execute_command", {"host_id": "db1", "command": "df -h"},
                               content="I will run df -h on db1"),
            tool_call_response("report", {"text": "db1 uses 25% of /"})
        )
        agent = make_agent(llm)

        events = await run_turn(agent, "check disk space on db1")

        host, credentials, ssh_config = connector_factory.call_args[0]
        assert host.id == "db1"
        assert credentials == {"username": "admin", "password": "s3cr3t-pass"}
        mock_ssh_connector.execute_command.assert_awaited_once()
        assert mock_ssh_connector.execute_command.await_args[0][0] == "df -h"

        assert ActionOutcome("Filesystem Size Used\n/dev/sda1 20G 5G\n") in events
        assert events[-1] == FinalAnswer("db1 uses 25% of /")

    @pytest.mark.asyncio
    async def test_memory_is_sent_in_full(self, make_agent, scripted_llm, tool_call_response):
        """Тест: каждый запрос содержит всю память и декларации инструментов"""
        llm = scripted_llm(
            tool_call_response("get_hosts", {}),
            tool_call_response("report", {"text": "ok"})
        )
        agent = make_agent(llm)

        await run_turn(agent, "hosts?")

        first, second = llm.requests
        assert [m["role"] for m in first.messages] == ["system", "user"]
        assert [m["role"] for m in second.messages] == ["system", "user", "assistant", "tool"]
        assert second.messages[3]["tool_call_id"] == "call_get_hosts"
        assert {t["function"]["name"] for t in first.tools} == {"report", "get_hosts", "execute_command"}
        assert first.model == "test-model"
        assert first.timeout is not None and first.timeout <= 30

    @pytest.mark.asyncio
    async def test_memory_persists_between_turns(self, make_agent, scripted_llm, tool_call_response):
        """Тест: второй ход продолжает тот же диалог"""
        llm = scripted_llm(
            tool_call_response("report", {"text": "first"}),
            tool_call_response("report", {"text": "second"})
        )
        agent = make_agent(llm)

        await run_turn(agent, "one")
        await run_turn(agent, "two")

        user_messages = [e.content for e in agent.memory if e.role == Role.USER]
        assert user_messages == ["one", "two"]
        assert llm.requests[1].messages[0]["role"] == "system"

    @pytest.mark.asyncio
    async def test_second_start_while_running_is_rejected(self, mock_agent_config, scripted_llm,
                                                          tool_call_response):
        """Тест: повторный запуск во время хода запрещен"""
        blocking = BlockingTool()
        llm = scripted_llm(
            tool_call_response("block", {}),
            tool_call_response("report", {"text": "done"})
        )
        agent = ReActAgent(llm, ToolRegistry([ReportTool(), blocking]), mock_agent_config)

        events = EventStream()
        task = asyncio.ensure_future(agent.start(TurnContext(30), "go", events))
        await asyncio.wait_for(blocking.started.wait(), timeout=5)

        assert agent.running is True
        assert agent.state == AgentState.DISPATCHING_ACTION
        other = EventStream()
        with pytest.raises(AgentBusyError):
            await agent.start(TurnContext(30), "again", other)
        assert other.closed is False

        blocking.release.set()
        await asyncio.wait_for(task, timeout=5)
        assert agent.running is False
        assert events.terminal_event == FinalAnswer("done")

    @pytest.mark.asyncio
    async def test_task_cancellation_closes_stream(self, mock_agent_config, scripted_llm, tool_call_response):
        """Тест: отмена задачи агента закрывает поток с FatalError"""
        blocking = BlockingTool()
        llm = scripted_llm(tool_call_response("block", {}))
        agent = ReActAgent(llm, ToolRegistry([ReportTool(), blocking]), mock_agent_config)

        events = EventStream()
        task = asyncio.ensure_future(agent.start(TurnContext(30), "go", events))
        await asyncio.wait_for(blocking.started.wait(), timeout=5)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert events.closed
        assert isinstance(events.terminal_event, FatalError)
        assert isinstance(events.terminal_event.error, TurnCancelledError)
        assert agent.running is False

    @pytest.mark.asyncio
    async def test_cancel_during_remote_command(self, mock_agent_config, sample_inventory, scripted_llm,
                                                tool_call_response):
        """Тест: отмена контекста прерывает команду на хосте и завершает ход"""
        channel = HangingChannel()
        client = Mock()
        client.get_transport.return_value.is_active.return_value = True
        client.get_transport.return_value.open_session.return_value = channel

        llm = scripted_llm(
            tool_call_response("execute_command", {"host_id": "db1", "command": "tail -f /var/log/syslog"})
        )
        registry = ToolRegistry([ReportTool(), ExecuteCommandTool(sample_inventory)])
        agent = ReActAgent(llm, registry, mock_agent_config)
        ctx = TurnContext(30)

        with patch('paramiko.SSHClient', return_value=client):
            asyncio.get_running_loop().call_later(0.1, ctx.cancel)
            events = await asyncio.wait_for(run_turn(agent, "follow the syslog on db1", ctx), timeout=5)

        assert [type(e) for e in events] == [
            TokenUsageUpdated, ReasoningStep, ActionProposed, ActionOutcome, FatalError
        ]
        assert events[3] == ActionOutcome("tool error: context canceled")
        assert events[4].text == "context canceled"
        assert llm.request_count == 1

        channel.transport._send_user_message.assert_called_once()
        assert channel.closed.is_set()
        client.close.assert_called_once()
        assert agent.running is False
        assert agent.state == AgentState.TERMINATED
