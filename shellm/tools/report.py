"""
Инструмент report: итоговый ответ пользователю
"""
from pydantic import Field

from .base import Tool, ToolArgs
from ..utils.context import TurnContext


class ReportArgs(ToolArgs):
    text: str = Field(..., description="Final answer in markdown")


class ReportTool(Tool):
    """Возвращает текст без изменений; вызов завершает ход"""

    name = "report"
    description = "Provides final answer to user"
    args_model = ReportArgs

    async def call(self, ctx: TurnContext, args: ReportArgs) -> str:
        return args.text
