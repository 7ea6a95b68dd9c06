"""
Инвентарь хостов и хранилище секретов

Оба файла - YAML списки записей. Инвентарь загружается один раз при старте
и дальше используется инструментами только для чтения.
"""
import os
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, model_validator
from pydantic_core import PydanticCustomError
from loguru import logger

from ..utils.validator import ConfigValidator, DataValidator, ValidationError


class InventoryValidationError(ValidationError):
    """Ошибка загрузки инвентаря или секретов"""
    pass


class Host(BaseModel):
    """Хост из инвентаря"""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra='ignore', coerce_numbers_to_str=True)

    id: str = Field(..., min_length=1, pattern=r"^[A-Za-z0-9_.-]+$", description="Идентификатор хоста")
    host: str = Field(..., min_length=1, description="Имя или адрес хоста")
    port: int = Field(default=22, ge=1, le=65535, description="Порт SSH")
    secret_ref: str = Field(..., min_length=1, alias="secretRef", description="Ссылка на секрет")
    description: str = Field(default="", description="Описание")
    tags: Tuple[str, ...] = Field(default=(), description="Теги")

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def public_info(self) -> Dict[str, object]:
        """Проекция без учетных данных (для LLM и UI)"""
        return {
            'id': self.id,
            'host': self.host,
            'port': self.port,
            'description': self.description,
            'tags': list(self.tags)
        }


class Secret(BaseModel):
    """Учетные данные для SSH аутентификации"""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra='ignore', coerce_numbers_to_str=True)

    id: str = Field(..., min_length=1, description="Идентификатор секрета")
    type: Literal["password", "keyfile"] = Field(..., description="Тип аутентификации")
    user: str = Field(..., min_length=1, description="Имя пользователя")
    filepath: Optional[str] = Field(default=None, description="Путь к приватному ключу")
    password: Optional[str] = Field(default=None, repr=False, description="Пароль")
    password_env_key: Optional[str] = Field(default=None, alias="passwordEnvKey", description="Переменная окружения с паролем")

    @model_validator(mode='after')
    def check_credentials(self) -> 'Secret':
        """Перекрестные правила для полей секрета"""
        if self.type == "keyfile" and not self.filepath:
            raise PydanticCustomError(
                'required_if', "filepath is required when type is keyfile", {'field': 'filepath'}
            )
        if self.password and self.password_env_key:
            raise PydanticCustomError(
                'excluded_with', "password and passwordEnvKey are mutually exclusive", {'field': 'password'}
            )
        if self.type == "password" and not self.password and not self.password_env_key:
            raise PydanticCustomError(
                'required_oneof', "either password or passwordEnvKey must be set", {'field': 'password'}
            )
        return self

    def resolve_password(self, environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
        """Пароль напрямую или из переменной окружения"""
        if self.password:
            return self.password
        if self.password_env_key:
            environ = os.environ if environ is None else environ
            return environ.get(self.password_env_key) or None
        return None


def _records(path: str, section: str) -> list:
    data = ConfigValidator.load_yaml_file(path)
    # Допускаем как голый список, так и словарь с одноименной секцией
    if isinstance(data, dict) and section in data:
        data = data[section]
    return ConfigValidator.require_list(data, path)


def load_secrets(path: str) -> Dict[str, Secret]:
    """
    Загрузка и валидация файла секретов

    Raises:
        InventoryValidationError: при первой невалидной записи; частичный
            результат не возвращается
    """
    secrets: Dict[str, Secret] = {}
    try:
        records = _records(path, "secrets")
    except ValidationError as e:
        raise InventoryValidationError(str(e))

    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise InventoryValidationError(f"secret #{index}: expected a mapping")
        record_id = record.get('id')
        try:
            secret = Secret.model_validate(record)
        except PydanticValidationError as e:
            raise InventoryValidationError(DataValidator.describe("secret", record_id, e))
        if secret.id in secrets:
            raise InventoryValidationError(f"secret '{secret.id}': duplicate id")
        secrets[secret.id] = secret

    return secrets


def load_hosts(path: str) -> Dict[str, Host]:
    """Загрузка и валидация файла инвентаря"""
    hosts: Dict[str, Host] = {}
    try:
        records = _records(path, "hosts")
    except ValidationError as e:
        raise InventoryValidationError(str(e))

    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise InventoryValidationError(f"host #{index}: expected a mapping")
        try:
            host = Host.model_validate(record)
        except PydanticValidationError as e:
            raise InventoryValidationError(DataValidator.describe("host", record.get('id'), e))
        if host.id in hosts:
            raise InventoryValidationError(f"host '{host.id}': duplicate id")
        hosts[host.id] = host

    return hosts


class Inventory:
    """Неизменяемый набор хостов и секретов"""

    def __init__(self, hosts: Mapping[str, Host], secrets: Mapping[str, Secret]):
        self._hosts = MappingProxyType(dict(hosts))
        self._secrets = MappingProxyType(dict(secrets))

    @classmethod
    def load(cls, inventory_path: str, secrets_path: str) -> 'Inventory':
        """Загрузка инвентаря и секретов из файлов"""
        hosts = load_hosts(inventory_path)
        secrets = load_secrets(secrets_path)

        for host in hosts.values():
            if host.secret_ref not in secrets:
                logger.warning(
                    "Хост ссылается на неизвестный секрет",
                    host_id=host.id,
                    secret_ref=host.secret_ref
                )

        logger.info("Инвентарь загружен", hosts=len(hosts), secrets=len(secrets))
        return cls(hosts, secrets)

    @property
    def hosts(self) -> Mapping[str, Host]:
        return self._hosts

    @property
    def secrets(self) -> Mapping[str, Secret]:
        return self._secrets

    def get_host(self, host_id: str) -> Optional[Host]:
        return self._hosts.get(host_id)

    def get_secret(self, secret_id: str) -> Optional[Secret]:
        return self._secrets.get(secret_id)

    def list_hosts(self) -> List[Host]:
        """Хосты, отсортированные по идентификатору"""
        return sorted(self._hosts.values(), key=lambda h: h.id)

    def __len__(self) -> int:
        return len(self._hosts)

    def __repr__(self) -> str:
        return f"Inventory(hosts={len(self._hosts)}, secrets={len(self._secrets)})"
