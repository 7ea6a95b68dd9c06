"""
Интерфейс для взаимодействия с LLM
"""
import json
import time
import uuid
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List, Iterable
from dataclasses import dataclass, field
import requests

from ..config.agent_config import LLMConfig
from ..utils.logger import StructuredLogger
from .conversation import ActionInvocation


@dataclass
class LLMRequest:
    """Запрос к LLM: вся память диалога и декларации инструментов"""

    messages: List[Dict[str, Any]]
    model: str
    tools: List[Dict[str, Any]] = field(default_factory=list)
    temperature: float = 0.2
    max_tokens: Optional[int] = None
    timeout: Optional[float] = None


@dataclass
class LLMResponse:
    """Ответ от LLM"""

    success: bool
    content: Optional[str] = None
    tool_calls: List[ActionInvocation] = field(default_factory=list)
    error: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None
    model: Optional[str] = None
    duration: Optional[float] = None  # в секундах

    @property
    def total_tokens(self) -> int:
        if not self.usage:
            return 0
        return int(self.usage.get('total_tokens') or 0)


class LLMInterface(ABC):
    """Абстрактный интерфейс для работы с LLM"""

    @abstractmethod
    def generate_response(self, request: LLMRequest) -> LLMResponse:
        """
        Генерация ответа от LLM

        Ошибки транспорта и протокола не выбрасываются, а возвращаются
        как LLMResponse(success=False, error=...).
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Проверка доступности LLM"""
        pass


def parse_tool_calls(raw_calls: Optional[Iterable[Dict[str, Any]]]) -> List[ActionInvocation]:
    """Разбор tool_calls из сообщения chat completions"""
    calls = []
    for raw in raw_calls or []:
        function = raw.get('function') or {}
        arguments = function.get('arguments')
        if arguments is None:
            arguments = ""
        elif not isinstance(arguments, str):
            # Некоторые провайдеры возвращают аргументы объектом
            arguments = json.dumps(arguments, ensure_ascii=False)
        calls.append(ActionInvocation(
            name=function.get('name') or "",
            arguments=arguments,
            call_id=raw.get('id') or f"call_{uuid.uuid4().hex[:12]}"
        ))
    return calls


class OpenAIInterface(LLMInterface):
    """Интерфейс для OpenAI-совместимого API (OpenAI, OpenRouter, vLLM, ...)"""

    def __init__(self, config: LLMConfig, logger: Optional[StructuredLogger] = None):
        """
        Инициализация интерфейса OpenAI

        Args:
            config: Конфигурация LLM
            logger: Логгер
        """
        if not config.api_key:
            raise ValueError("API ключ не задан: укажите llm.api_key или SHELLM_API_KEY")

        self.config = config
        self.logger = logger or StructuredLogger("OpenAIInterface")
        self.base_url = config.base_url.rstrip('/')
        self.api_key = config.api_key
        self.timeout = config.timeout
        self.session = requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    def generate_response(self, request: LLMRequest) -> LLMResponse:
        """
        Генерация ответа от OpenAI-совместимого API

        Args:
            request: Запрос к LLM

        Returns:
            Ответ от LLM
        """
        start_time = time.time()

        timeout = self.timeout
        if request.timeout is not None:
            if request.timeout <= 0:
                return LLMResponse(success=False, error="context deadline exceeded", duration=0.0)
            timeout = min(timeout, request.timeout)

        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": request.messages,
            "temperature": request.temperature
        }
        if request.tools:
            payload["tools"] = request.tools
        if request.max_tokens:
            payload["max_tokens"] = request.max_tokens

        self.logger.debug(
            "Отправка запроса к LLM",
            model=request.model,
            messages=len(request.messages),
            tools=len(request.tools),
            timeout=timeout
        )

        try:
            response = self.session.post(
                f"{self.base_url}/chat/completions",
                headers=self._headers(),
                json=payload,
                timeout=timeout
            )
        except requests.exceptions.Timeout:
            duration = time.time() - start_time
            self.logger.error("Таймаут запроса к LLM", duration=duration)
            return LLMResponse(success=False, error=f"completion request timed out after {timeout}s",
                               duration=duration)
        except requests.exceptions.RequestException as e:
            duration = time.time() - start_time
            self.logger.error("Ошибка сети при запросе к LLM", error=str(e), duration=duration)
            return LLMResponse(success=False, error=f"completion request failed: {e}",
                               duration=duration)

        duration = time.time() - start_time

        if response.status_code != 200:
            error_msg = f"API error: {response.status_code} - {response.text[:500]}"
            self.logger.error(
                "Ошибка запроса к LLM",
                status_code=response.status_code,
                duration=duration
            )
            return LLMResponse(success=False, error=error_msg, duration=duration)

        try:
            data = response.json()
        except ValueError as e:
            self.logger.error("Невалидный JSON в ответе LLM", error=str(e))
            return LLMResponse(success=False, error=f"invalid completion response: {e}",
                               duration=duration)

        return self._parse_completion(data, request, duration)

    def _parse_completion(self, data: Dict[str, Any], request: LLMRequest, duration: float) -> LLMResponse:
        """Извлечение текста, вызовов инструментов и статистики из ответа"""
        choices = data.get('choices') or []
        if not choices:
            error_msg = "empty completion"
            # OpenRouter может вернуть 200 с описанием ошибки вместо choices
            api_error = data.get('error')
            if isinstance(api_error, dict) and api_error.get('message'):
                error_msg = f"empty completion: {api_error['message']}"
            self.logger.error("Пустой ответ от LLM", duration=duration)
            return LLMResponse(success=False, error=error_msg, usage=data.get('usage'),
                               duration=duration)

        message = choices[0].get('message') or {}
        content = message.get('content') or ""
        tool_calls = parse_tool_calls(message.get('tool_calls'))
        usage = data.get('usage') or {}

        self.logger.log_llm_request(
            model=data.get('model', request.model),
            messages=len(request.messages),
            tools=len(request.tools),
            duration=duration,
            tokens=int(usage.get('total_tokens') or 0)
        )

        return LLMResponse(
            success=True,
            content=content,
            tool_calls=tool_calls,
            usage=usage,
            model=data.get('model', request.model),
            duration=duration
        )

    def is_available(self) -> bool:
        """Проверка доступности API"""
        try:
            response = self.session.get(
                f"{self.base_url}/models",
                headers=self._headers(),
                timeout=10
            )
            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            self.logger.debug("LLM API недоступен", error=str(e))
            return False


class MockLLMInterface(LLMInterface):
    """Мок-интерфейс: воспроизводит заранее заданные ответы"""

    DEFAULT_REPORT = "Mock mode: no completion provider is configured."

    def __init__(self, responses: Optional[List[LLMResponse]] = None, logger: Optional[StructuredLogger] = None):
        self.logger = logger or StructuredLogger("MockLLMInterface")
        self.responses = list(responses or [])
        self.requests: List[LLMRequest] = []
        self.request_count = 0

    def generate_response(self, request: LLMRequest) -> LLMResponse:
        """Следующий ответ из сценария или вызов report по умолчанию"""
        self.request_count += 1
        self.requests.append(request)

        if self.responses:
            response = self.responses.pop(0)
        else:
            response = self._default_response()

        self.logger.debug("Генерация мок-ответа", request_number=self.request_count)
        return response

    def is_available(self) -> bool:
        """Мок всегда доступен"""
        return True

    def _default_response(self) -> LLMResponse:
        return LLMResponse(
            success=True,
            content="",
            tool_calls=[ActionInvocation(
                name="report",
                arguments=json.dumps({"text": self.DEFAULT_REPORT}),
                call_id=f"call_mock_{self.request_count}"
            )],
            usage={"total_tokens": 0},
            model="mock",
            duration=0.0
        )


class LLMInterfaceFactory:
    """Фабрика для создания интерфейсов LLM"""

    @staticmethod
    def create_interface(config: LLMConfig, logger: Optional[StructuredLogger] = None,
                         mock_mode: bool = False) -> LLMInterface:
        """
        Создание интерфейса LLM

        Args:
            config: Конфигурация LLM
            logger: Логгер
            mock_mode: Использовать ли мок-режим

        Returns:
            Интерфейс LLM
        """
        if mock_mode:
            return MockLLMInterface(logger=logger)
        return OpenAIInterface(config, logger)


class LLMRequestBuilder:
    """Построитель запросов к LLM"""

    def __init__(self, default_model: str, default_temperature: float = 0.2):
        self.default_model = default_model
        self.default_temperature = default_temperature
        self.max_tokens: Optional[int] = None
        self.tools: List[Dict[str, Any]] = []

    def with_max_tokens(self, max_tokens: Optional[int]) -> 'LLMRequestBuilder':
        """Ограничение длины ответа"""
        self.max_tokens = max_tokens
        return self

    def with_tools(self, tools: List[Dict[str, Any]]) -> 'LLMRequestBuilder':
        """Установка деклараций инструментов"""
        self.tools = list(tools)
        return self

    def build(self, messages: List[Dict[str, Any]], timeout: Optional[float] = None) -> LLMRequest:
        """Построение запроса"""
        return LLMRequest(
            messages=messages,
            model=self.default_model,
            tools=self.tools,
            temperature=self.default_temperature,
            max_tokens=self.max_tokens,
            timeout=timeout
        )
