"""
Agents module for SheLLM.

This module contains the ReAct agent that drives one conversation: it talks
to the LLM, dispatches tool calls and streams events to the UI.
"""

from .react_agent import (
    ReActAgent,
    AgentState,
    AgentBusyError,
    CompletionError,
    UsageStats,
    SYSTEM_PROMPT,
    REPORT_TOOL,
    MAX_ITERATIONS_MESSAGE
)

__all__ = [
    "ReActAgent",
    "AgentState",
    "AgentBusyError",
    "CompletionError",
    "UsageStats",
    "SYSTEM_PROMPT",
    "REPORT_TOOL",
    "MAX_ITERATIONS_MESSAGE"
]
