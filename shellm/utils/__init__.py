"""
Utilities module for SheLLM.

This module contains logging, validation helpers and the turn context.
"""

from .logger import LoggerSetup, StructuredLogger
from .validator import ValidationError, ConfigValidator, DataValidator
from .context import TurnContext, TurnContextError, TurnCancelledError, TurnTimeoutError

__all__ = [
    "LoggerSetup",
    "StructuredLogger",
    "ValidationError",
    "ConfigValidator",
    "DataValidator",
    "TurnContext",
    "TurnContextError",
    "TurnCancelledError",
    "TurnTimeoutError",
]
