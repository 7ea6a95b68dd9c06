"""
Инструменты агента
"""
from .base import Tool, ToolArgs, ToolError, ToolArgumentsError
from .registry import ToolRegistry
from .report import ReportTool
from .ping import PingTool, PingError
from .get_hosts import GetHostsTool
from .execute_command import ExecuteCommandTool

__all__ = [
    'Tool',
    'ToolArgs',
    'ToolError',
    'ToolArgumentsError',
    'ToolRegistry',
    'ReportTool',
    'PingTool',
    'PingError',
    'GetHostsTool',
    'ExecuteCommandTool'
]
