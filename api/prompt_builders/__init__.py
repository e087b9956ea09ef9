"""
App prompt builders. All prompt content lives here; services receive built prompts.
"""

from api.prompt_builders.tutor import (
    NO_CONTEXT_PLACEHOLDER,
    build_tutor_system_prompt,
    format_context,
    language_directive,
)

__all__ = [
    "NO_CONTEXT_PLACEHOLDER",
    "build_tutor_system_prompt",
    "format_context",
    "language_directive",
]
