"""
Система логирования SheLLM на базе loguru

Терминал занят чатом, поэтому в консоль по умолчанию идут только
предупреждения и ошибки; подробный журнал пишется в файлы.
"""
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger


CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> "
    "<level>{level: <7}</level> "
    "<cyan>{extra[agent]}</cyan>: "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <7} | {extra[agent]} | "
    "{name}:{line} | {message} | {extra}"
)

DEFAULTS: Dict[str, Any] = {
    'level': 'INFO',
    'log_file': 'logs/shellm.log',
    'error_file': 'logs/errors.log',
    'max_file_size': '10 MB',
    'retention_days': 7,
    'compression': True,
    'console': True,
    'console_level': 'WARNING'
}


class LoggerSetup:
    """Настройка обработчиков loguru по секции logging конфигурации"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Args:
            config: Секция logging (см. LoggingConfig); недостающие ключи
                берутся из DEFAULTS
        """
        self.config = {**DEFAULTS, **(config or {})}
        self.sinks = self._build_sinks()
        self._apply()

    def _build_sinks(self) -> List[Dict[str, Any]]:
        """Параметры logger.add для каждого включенного обработчика"""
        compression = "zip" if self.config['compression'] else None
        sinks = []

        if self.config['console']:
            sinks.append({
                'sink': sys.stderr,
                'level': self.config['console_level'],
                'format': CONSOLE_FORMAT,
                'colorize': True,
                'filter': self._console_filter
            })

        if self.config['log_file']:
            sinks.append({
                'sink': self.config['log_file'],
                'level': self.config['level'],
                'format': FILE_FORMAT,
                'rotation': self.config['max_file_size'],
                'retention': f"{self.config['retention_days']} days",
                'compression': compression,
                'encoding': 'utf-8'
            })

        if self.config['error_file']:
            sinks.append({
                'sink': self.config['error_file'],
                'level': 'ERROR',
                'format': FILE_FORMAT,
                'rotation': '5 MB',
                'retention': '30 days',
                'compression': compression,
                'encoding': 'utf-8'
            })

        return sinks

    def _apply(self):
        logger.remove()

        for sink in self.sinks:
            if isinstance(sink['sink'], str):
                Path(sink['sink']).parent.mkdir(parents=True, exist_ok=True)
            logger.add(**sink)

        logger.configure(patcher=self._patch_record)

    @staticmethod
    def _patch_record(record):
        record["extra"].setdefault("agent", "shellm")
        record["extra"]["pid"] = os.getpid()

    def _console_filter(self, record) -> bool:
        """DEBUG попадает в консоль, только если и общий уровень DEBUG"""
        return record["level"].name != "DEBUG" or self.config['level'] == "DEBUG"


class StructuredLogger:
    """
    Логгер компонента: сообщение плюс именованные поля

    Сообщения статичны, все переменные данные передаются полями, чтобы
    loguru не интерпретировал их как шаблон.
    """

    def __init__(self, agent_name: str, **context):
        self.agent_name = agent_name
        self.logger = logger.bind(agent=agent_name, **context)

    def _emit(self, level: str, message: str, fields: Dict[str, Any]):
        self.logger.log(level, message, **fields)

    def debug(self, message: str, **fields):
        self._emit("DEBUG", message, fields)

    def info(self, message: str, **fields):
        self._emit("INFO", message, fields)

    def warning(self, message: str, **fields):
        self._emit("WARNING", message, fields)

    def error(self, message: str, **fields):
        self._emit("ERROR", message, fields)

    def log_turn_start(self, user_message: str, max_iterations: int):
        self.info("Turn started", message_length=len(user_message), max_iterations=max_iterations)

    def log_turn_end(self, outcome: str, iterations: int, total_tokens: int, duration: float):
        self.info(
            "Turn finished",
            outcome=outcome,
            iterations=iterations,
            total_tokens=total_tokens,
            duration=round(duration, 3)
        )

    def log_tool_call(self, tool: str, success: bool, duration: float, output_length: int = 0):
        self.info(
            "Tool executed",
            tool=tool,
            success=success,
            duration=round(duration, 3),
            output_length=output_length
        )

    def log_ssh_connection(self, host: str, port: int, success: bool, error: Optional[str] = None):
        # Неудачное подключение видно и в консоли
        level = "INFO" if success else "WARNING"
        self._emit(level, "SSH connection", {'host': host, 'port': port, 'success': success, 'error': error})

    def log_llm_request(self, model: str, messages: int, tools: int, duration: float, tokens: int):
        self.info(
            "LLM request",
            model=model,
            messages=messages,
            tools=tools,
            duration=round(duration, 3),
            tokens=tokens
        )
