"""
Инструмент execute_command: выполнение команды на хосте из инвентаря
"""
import os
from typing import Callable, Mapping, Optional

from pydantic import Field

from .base import Tool, ToolArgs
from ..config.agent_config import SSHConfig
from ..config.inventory import Inventory
from ..connectors.ssh_connector import (
    SSHConnector, HostNotFoundError, AuthResolutionError, resolve_credentials
)
from ..utils.context import TurnContext
from ..utils.logger import StructuredLogger


class ExecuteCommandArgs(ToolArgs):
    host_id: str = Field(..., description="Host ID from get_hosts")
    command: str = Field(..., min_length=1, description="Shell command to run")


class ExecuteCommandTool(Tool):
    """Разрешает хост и секрет, затем выполняет команду через SSHConnector"""

    name = "execute_command"
    description = (
        "Executes given command on the specified host. "
        "Host ID can be obtained from the get_hosts tool."
    )
    args_model = ExecuteCommandArgs

    def __init__(self, inventory: Inventory, ssh_config: Optional[SSHConfig] = None,
                 connector_factory: Callable[..., SSHConnector] = SSHConnector,
                 environ: Optional[Mapping[str, str]] = None):
        self.inventory = inventory
        self.ssh_config = ssh_config or SSHConfig()
        self.connector_factory = connector_factory
        self.environ = os.environ if environ is None else environ
        self.logger = StructuredLogger("ExecuteCommandTool")

    async def call(self, ctx: TurnContext, args: ExecuteCommandArgs) -> str:
        host = self.inventory.get_host(args.host_id)
        if host is None:
            raise HostNotFoundError(args.host_id)

        secret = self.inventory.get_secret(host.secret_ref)
        if secret is None:
            raise AuthResolutionError(
                f"Secret '{host.secret_ref}' for host '{host.id}' does not exist"
            )

        credentials = resolve_credentials(secret, self.environ)
        connector = self.connector_factory(host, credentials, self.ssh_config)
        result = await connector.execute_command(args.command, ctx)
        self.logger.debug("Результат команды", **result.to_dict())
        return result.output
