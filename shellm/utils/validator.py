"""
Утилиты для валидации данных
"""
from typing import Any, Optional
from pathlib import Path
import yaml
from pydantic import ValidationError as PydanticValidationError


class ValidationError(Exception):
    """Кастомное исключение для ошибок валидации"""
    pass


class ConfigValidator:
    """Валидатор конфигурационных файлов"""

    @staticmethod
    def load_yaml_file(file_path: str) -> Any:
        """
        Чтение и парсинг YAML файла

        Args:
            file_path: Путь к YAML файлу

        Returns:
            Распарсенное содержимое файла

        Raises:
            ValidationError: Если файл не найден или содержит невалидный YAML
        """
        path = Path(file_path)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f)
        except FileNotFoundError:
            raise ValidationError(f"Файл не найден: {file_path}")
        except yaml.YAMLError as e:
            raise ValidationError(f"Ошибка парсинга YAML файла {file_path}: {e}")

    @staticmethod
    def require_list(data: Any, file_path: str) -> list:
        """Файлы инвентаря и секретов - это YAML списки записей"""
        if data is None:
            return []
        if not isinstance(data, list):
            raise ValidationError(f"Ожидался список записей в файле {file_path}, получено: {type(data).__name__}")
        return data


class DataValidator:
    """Преобразование ошибок pydantic в короткие сообщения"""

    @staticmethod
    def first_error(exc: PydanticValidationError) -> tuple:
        """
        Первая ошибка валидации в виде (поле, правило)

        Для ошибок model_validator поле передается через ctx['field'].
        """
        error = exc.errors()[0]
        ctx = error.get('ctx') or {}
        field = ctx.get('field')
        if not field:
            field = ".".join(str(part) for part in error.get('loc', ())) or "__root__"
        rule = ctx.get('rule') or error.get('type', 'invalid')
        return field, rule

    @staticmethod
    def describe(kind: str, record_id: Optional[str], exc: PydanticValidationError) -> str:
        """Сообщение вида "secret 'db': validation failed for field 'password' on rule 'required_oneof'" """
        field, rule = DataValidator.first_error(exc)
        return f"{kind} '{record_id or '?'}': validation failed for field '{field}' on rule '{rule}'"
