"""
Результат удаленной команды
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict


@dataclass(frozen=True)
class CommandResult:
    """
    Завершенная команда на хосте из инвентаря

    Создается только для команд с нулевым кодом выхода; остальные исходы
    SSHConnector выражает исключениями.
    """

    command: str
    host_id: str
    exit_code: int
    # stdout и stderr в порядке поступления
    output: str = ""
    duration: float = 0.0
    finished_at: datetime = field(default_factory=datetime.now)

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'command': self.command,
            'host_id': self.host_id,
            'exit_code': self.exit_code,
            'output_length': len(self.output),
            'duration': round(self.duration, 3),
            'finished_at': self.finished_at.isoformat()
        }
