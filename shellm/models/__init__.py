"""
Models module for SheLLM.

This module contains the conversation memory, agent events and LLM integration classes.
"""

# Память диалога
from .conversation import (
    Role,
    MemoryEntry,
    ActionInvocation,
    ConversationMemory,
    ConversationError
)

# События агента
from .events import (
    AgentEvent,
    ReasoningStep,
    ActionProposed,
    ActionOutcome,
    TokenUsageUpdated,
    FinalAnswer,
    FatalError,
    EventStream,
    EventStreamClosedError
)

# Интерфейс LLM
from .llm_interface import (
    LLMInterface,
    LLMRequest,
    LLMResponse,
    OpenAIInterface,
    MockLLMInterface,
    LLMInterfaceFactory,
    LLMRequestBuilder
)

from .command_result import CommandResult

__all__ = [
    "Role",
    "MemoryEntry",
    "ActionInvocation",
    "ConversationMemory",
    "ConversationError",

    "AgentEvent",
    "ReasoningStep",
    "ActionProposed",
    "ActionOutcome",
    "TokenUsageUpdated",
    "FinalAnswer",
    "FatalError",
    "EventStream",
    "EventStreamClosedError",

    "LLMInterface",
    "LLMRequest",
    "LLMResponse",
    "OpenAIInterface",
    "MockLLMInterface",
    "LLMInterfaceFactory",
    "LLMRequestBuilder",

    "CommandResult",
]
