"""
Конфигурация агента и LLM
"""
import os
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any, Mapping, Tuple
from pathlib import Path
import yaml


DEFAULT_CONFIG_PATH = "config/shellm.yaml"

# Переменные окружения переопределяют значения из YAML файла
ENV_PREFIX = "SHELLM_"
ENV_OVERRIDES: Dict[str, Tuple[str, str]] = {
    "API_KEY": ("llm", "api_key"),
    "API_BASE_URL": ("llm", "base_url"),
    "API_MODEL": ("llm", "model"),
    "LLM_MAX_ITERATIONS": ("agent", "max_iterations"),
    "LLM_TIMEOUT": ("agent", "turn_timeout"),
    "INVENTORY_PATH": ("inventory", "inventory_path"),
    "SECRETS_PATH": ("inventory", "secrets_path"),
    "SSH_INSECURE_IGNORE_HOST_KEYS": ("ssh", "insecure_ignore_host_keys"),
    "LOG_LEVEL": ("logging", "level"),
}


class LLMConfig(BaseModel):
    """Конфигурация LLM (OpenAI-совместимый API)"""

    api_key: Optional[str] = Field(default=None, description="API ключ")
    base_url: str = Field(default="https://openrouter.ai/api/v1", description="Базовый URL API")
    model: str = Field(default="google/gemini-2.5-pro", description="Модель")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0, description="Температура")
    max_tokens: Optional[int] = Field(default=None, ge=1, description="Ограничение токенов ответа")
    timeout: int = Field(default=60, ge=1, le=600, description="Таймаут HTTP запроса в секундах")

    @field_validator('api_key')
    @classmethod
    def validate_api_key(cls, v):
        """Пустой ключ и шаблонное значение считаются отсутствующим ключом"""
        if v is None:
            return None
        v = v.strip()
        if not v or v in ("your-api-key", "your-api-key-here"):
            return None
        return v


class ReActConfig(BaseModel):
    """Параметры цикла рассуждений"""

    max_iterations: int = Field(default=10, ge=1, le=100, description="Максимум раундов на один ход")
    turn_timeout: float = Field(default=60, gt=0, description="Таймаут хода в секундах")


class InventoryConfig(BaseModel):
    """Пути к файлам инвентаря и секретов"""

    inventory_path: str = Field(default="./inventory", description="YAML список хостов")
    secrets_path: str = Field(default="./secrets", description="YAML список секретов")


class SSHConfig(BaseModel):
    """Параметры SSH транспорта"""

    connect_timeout: float = Field(default=5, gt=0, le=120, description="Таймаут подключения в секундах")
    # Отключает проверку ключа хоста. Небезопасно, только для доверенных сетей.
    insecure_ignore_host_keys: bool = Field(default=False, description="Не проверять ключи хостов")
    known_hosts_path: Optional[str] = Field(default=None, description="Дополнительный known_hosts файл")


class ToolsConfig(BaseModel):
    """Параметры вспомогательных инструментов"""

    ping_count: int = Field(default=5, ge=1, le=50, description="Количество ICMP запросов")
    ping_timeout: float = Field(default=30, gt=0, description="Таймаут ping в секундах")


class LoggingConfig(BaseModel):
    """Конфигурация логирования"""

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$", description="Уровень логирования")
    log_file: Optional[str] = Field(default="logs/shellm.log", description="Путь к файлу логов")
    error_file: Optional[str] = Field(default="logs/errors.log", description="Путь к файлу ошибок")
    max_file_size: str = Field(default="10 MB", description="Максимальный размер файла лога")
    retention_days: int = Field(default=7, ge=1, le=365, description="Количество дней хранения логов")
    compression: bool = Field(default=True, description="Сжимать ли старые логи")
    console: bool = Field(default=True, description="Писать ли логи в stderr")
    console_level: str = Field(default="WARNING", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$", description="Уровень консольного логирования")

    @field_validator('level', 'console_level', mode='before')
    @classmethod
    def normalize_level(cls, v):
        return v.upper() if isinstance(v, str) else v


class AgentConfig(BaseModel):
    """Основная конфигурация SheLLM"""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    agent: ReActConfig = Field(default_factory=ReActConfig)
    inventory: InventoryConfig = Field(default_factory=InventoryConfig)
    ssh: SSHConfig = Field(default_factory=SSHConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, config_path: str, environ: Optional[Mapping[str, str]] = None) -> 'AgentConfig':
        """Загрузка конфигурации из YAML файла с учетом переменных окружения"""
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Файл конфигурации должен содержать словарь: {config_path}")

        return cls.from_dict(data, environ)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], environ: Optional[Mapping[str, str]] = None) -> 'AgentConfig':
        """Создание конфигурации из словаря с учетом переменных окружения"""
        merged = {section: dict(values or {}) for section, values in data.items()}
        cls._apply_env_overrides(merged, os.environ if environ is None else environ)
        return cls(**merged)

    @classmethod
    def load(cls, config_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> 'AgentConfig':
        """
        Загрузка конфигурации

        Явно указанный файл обязан существовать; файл по умолчанию необязателен,
        тогда используются значения по умолчанию и переменные окружения.
        """
        if config_path:
            return cls.from_yaml(config_path, environ)
        if Path(DEFAULT_CONFIG_PATH).exists():
            return cls.from_yaml(DEFAULT_CONFIG_PATH, environ)
        return cls.from_dict({}, environ)

    @staticmethod
    def _apply_env_overrides(data: Dict[str, Dict[str, Any]], environ: Mapping[str, str]):
        for suffix, (section, key) in ENV_OVERRIDES.items():
            value = environ.get(ENV_PREFIX + suffix)
            if value is not None and value != "":
                data.setdefault(section, {})[key] = value

    def to_dict(self) -> Dict[str, Any]:
        """Преобразование в словарь (API ключ скрыт)"""
        data = self.model_dump()
        if data['llm']['api_key']:
            data['llm']['api_key'] = "***"
        return data
