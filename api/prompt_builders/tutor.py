"""Tutor system prompt for lesson chat."""

from __future__ import annotations

from textwrap import dedent
from typing import Iterable, Optional

from infra.vector.store import SearchResult

NO_CONTEXT_PLACEHOLDER = "(no matching lesson content was found)"

_LANGUAGE_DIRECTIVES = {
    "id": "Respond only in Indonesian (Bahasa Indonesia).",
    "en": "Respond only in English.",
    "mix": (
        "Respond in a natural mix of Indonesian and English. Keep technical terms in English "
        "and explain them in Indonesian."
    ),
}

TOOL_GUIDANCE = dedent(
    """
    TOOLS AVAILABLE:
    - searchResources: finds additional course resources, learning materials and references
      related to the user's question. It searches embedded course content and external resources.

    When to use searchResources:
    - The user asks for examples or additional explanations
    - The user needs supplementary learning materials
    - The question covers a specific topic that would benefit from external resources
    - You need more detailed information about a concept
    """
).strip()


def language_directive(preference: Optional[str]) -> str:
    """Directive for the user's language preference; Indonesian when unset or unknown."""
    return _LANGUAGE_DIRECTIVES.get((preference or "").strip().lower(), _LANGUAGE_DIRECTIVES["id"])


def format_context(results: Iterable[SearchResult]) -> str:
    snippets = [r.content for r in results if r.content and r.content.strip()]
    return "\n".join(snippets) if snippets else NO_CONTEXT_PLACEHOLDER


def build_tutor_system_prompt(user, lesson, results: Iterable[SearchResult]) -> str:
    """
    Compose the tutor prompt from the user's profile, the lesson title and the retrieved
    lesson context. Pure: no I/O, same inputs give the same prompt.
    """
    level = user.level or "beginner"
    style = user.delivery_preference or "clear and friendly"
    goals = ", ".join(user.learning_goals or []) or "(none stated)"
    language = user.language_preference or "id"

    sections = [
        "You are an AI tutor who helps learners understand their lesson material.",
        dedent(
            f"""
            User Profile:
            - Difficulty Level: {level}
            - Delivery Preference: {style}
            - Learning Goals: {goals}
            - Language Preference: {language}
            """
        ).strip(),
        f"Current Lesson: {lesson.title}",
        f"Relevant Context:\n{format_context(results)}",
        TOOL_GUIDANCE,
        (
            "Always answer about the literal topic of the user's question. If the question is about "
            "a topic other than the learner's stated goals or specialization, answer the question "
            "that was asked; use the profile only to adjust depth and style."
        ),
        f"Explain in a {style} style suited to a {level} learner.",
        language_directive(user.language_preference),
    ]
    return "\n\n".join(sections)
