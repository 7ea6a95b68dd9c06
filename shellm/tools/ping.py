"""
Инструмент ping: проверка доступности цели с машины оператора
"""
import asyncio
from typing import Optional

from pydantic import Field, field_validator

from .base import Tool, ToolArgs, ToolError
from ..config.agent_config import ToolsConfig
from ..utils.context import TurnContext
from ..utils.logger import StructuredLogger


class PingError(ToolError):
    """Ошибка запуска ping или ненулевой код выхода"""

    def __init__(self, message: str, output: str = "", exit_code: Optional[int] = None):
        super().__init__(message)
        self.output = output
        self.exit_code = exit_code


class PingArgs(ToolArgs):
    target: str = Field(..., min_length=1, description="IPv4 address or hostname")

    @field_validator('target')
    @classmethod
    def validate_target(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("target must not be empty")
        # Иначе цель будет разобрана как опция ping
        if v.startswith('-'):
            raise ValueError("target must not start with '-'")
        return v


class PingTool(Tool):
    """Запускает ping -c <count> <target> и возвращает объединенный вывод"""

    name = "ping"
    description = "Pings given ipv4 target"
    args_model = PingArgs

    def __init__(self, config: Optional[ToolsConfig] = None):
        self.config = config or ToolsConfig()
        self.logger = StructuredLogger("PingTool")

    async def call(self, ctx: TurnContext, args: PingArgs) -> str:
        argv = ["ping", "-c", str(self.config.ping_count), args.target]
        self.logger.debug("Запуск ping", target=args.target)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT
            )
        except OSError as e:
            raise PingError(f"failed to start ping: {e}") from e

        communicate = asyncio.ensure_future(
            asyncio.wait_for(process.communicate(), timeout=self.config.ping_timeout)
        )
        cancel_waiter = asyncio.ensure_future(ctx.wait())
        try:
            done, _ = await asyncio.wait({communicate, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
            if communicate not in done:
                self.logger.warning("ping прерван по контексту", target=args.target, reason=str(ctx.error))
                raise PingError(str(ctx.error))
            stdout, _ = communicate.result()
        except asyncio.TimeoutError:
            raise PingError(f"ping timed out after {self.config.ping_timeout}s")
        finally:
            for future in (communicate, cancel_waiter):
                if not future.done():
                    future.cancel()
            if process.returncode is None:
                process.kill()
                await process.wait()

        output = stdout.decode('utf-8', errors='replace')
        if process.returncode != 0:
            raise PingError(
                f"ping exited with status {process.returncode}: {output}",
                output=output,
                exit_code=process.returncode
            )
        return output
