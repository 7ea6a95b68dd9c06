"""
Инструмент get_hosts: список хостов без учетных данных
"""
import json

from .base import Tool, ToolArgs
from ..config.inventory import Inventory
from ..utils.context import TurnContext


class GetHostsTool(Tool):
    name = "get_hosts"
    description = (
        "Gets a list of available hosts from the inventory. Returns a JSON array of "
        "host information - ID, Host, Port, Description and tags"
    )
    args_model = ToolArgs

    def __init__(self, inventory: Inventory):
        self.inventory = inventory

    async def call(self, ctx: TurnContext, args: ToolArgs) -> str:
        hosts = [host.public_info() for host in self.inventory.list_hosts()]
        return json.dumps(hosts, indent=2, ensure_ascii=False)
