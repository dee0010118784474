from . import anthropic, gemini, openai
from ._common import SYNTHETIC_TOOL_DESCRIPTION, SYNTHETIC_TOOL_NAME, tool_root

__all__ = [
    "SYNTHETIC_TOOL_DESCRIPTION",
    "SYNTHETIC_TOOL_NAME",
    "anthropic",
    "gemini",
    "openai",
    "tool_root",
]
