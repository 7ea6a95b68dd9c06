"""
Конфигурация pytest для проекта SheLLM

Содержит общие фикстуры и настройки для всех тестов.
"""

import json
import pytest
from pathlib import Path
from typing import List
from unittest.mock import Mock, AsyncMock

import sys
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from shellm.config.agent_config import AgentConfig, LLMConfig, ReActConfig
from shellm.config.inventory import Host, Secret, Inventory
from shellm.connectors.ssh_connector import SSHConnector
from shellm.models.command_result import CommandResult
from shellm.models.conversation import ActionInvocation
from shellm.models.llm_interface import LLMResponse, MockLLMInterface


@pytest.fixture
def mock_llm_config():
    """Фикстура конфигурации LLM для тестов."""
    return LLMConfig(
        api_key="test-api-key",
        base_url="https://llm.example.com/v1",
        model="test-model",
        temperature=0.2,
        timeout=30
    )


@pytest.fixture
def mock_agent_config(mock_llm_config):
    """Фикстура полной конфигурации."""
    return AgentConfig(
        llm=mock_llm_config,
        agent=ReActConfig(max_iterations=5, turn_timeout=30),
        logging={"log_file": None, "error_file": None, "console": False}
    )


@pytest.fixture
def sample_hosts():
    """Фикстура хостов инвентаря."""
    return {
        "db1": Host(id="db1", host="10.0.0.20", port=22, secret_ref="db-pass",
                    description="Primary database", tags=("db", "prod")),
        "web1": Host(id="web1", host="10.0.0.10", port=2222, secret_ref="web-key",
                     description="Web frontend", tags=("web",)),
    }


@pytest.fixture
def sample_secrets():
    """Фикстура секретов."""
    return {
        "db-pass": Secret(id="db-pass", type="password", user="admin", password="s3cr3t-pass"),
        "web-key": Secret(id="web-key", type="keyfile", user="deploy", filepath="/keys/web_ed25519"),
    }


@pytest.fixture
def sample_inventory(sample_hosts, sample_secrets):
    """Фикстура инвентаря."""
    return Inventory(sample_hosts, sample_secrets)


@pytest.fixture
def mock_ssh_connector():
    """Фикстура мока SSH Connector."""
    connector = Mock(spec=SSHConnector)
    connector.connected = False
    connector.execute_command = AsyncMock(return_value=CommandResult(
        command="df -h",
        host_id="db1",
        exit_code=0,
        output="Filesystem Size Used\n/dev/sda1 20G 5G\n"
    ))
    return connector


def _tool_call_response(name: str, arguments: dict, content: str = "", tokens: int = 10,
                        call_id: str = None, extra_calls: List[ActionInvocation] = None) -> LLMResponse:
    call = ActionInvocation(
        name=name,
        arguments=json.dumps(arguments),
        call_id=call_id or f"call_{name}"
    )
    return LLMResponse(
        success=True,
        content=content,
        tool_calls=[call] + list(extra_calls or []),
        usage={"total_tokens": tokens},
        model="test-model"
    )


def _text_response(content: str, tokens: int = 10) -> LLMResponse:
    return LLMResponse(success=True, content=content, usage={"total_tokens": tokens}, model="test-model")


@pytest.fixture
def tool_call_response():
    """Фабрика ответа LLM с вызовом инструмента."""
    return _tool_call_response


@pytest.fixture
def text_response():
    """Фабрика ответа LLM без вызова инструмента."""
    return _text_response


@pytest.fixture
def scripted_llm():
    """Фабрика мок-интерфейса LLM со сценарием ответов."""
    def _factory(*responses: LLMResponse) -> MockLLMInterface:
        return MockLLMInterface(list(responses))
    return _factory


# Маркеры для категоризации тестов
def pytest_configure(config):
    """Настройка маркеров pytest."""
    config.addinivalue_line(
        "markers", "unit: Unit тесты"
    )
    config.addinivalue_line(
        "markers", "integration: Интеграционные тесты"
    )
    config.addinivalue_line(
        "markers", "ssh: Тесты, требующие SSH соединения"
    )
    config.addinivalue_line(
        "markers", "llm: Тесты, требующие LLM API"
    )


def pytest_collection_modifyitems(config, items):
    """Модификация элементов коллекции тестов."""
    for item in items:
        # Добавляем маркер unit для тестов без маркеров
        if not any(marker.name in ['unit', 'integration', 'ssh', 'llm'] for marker in item.iter_markers()):
            item.add_marker(pytest.mark.unit)
