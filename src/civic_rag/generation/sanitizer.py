"""Strategies that strip leaked model reasoning from generated answers."""

from __future__ import annotations

import re
from typing import Protocol

_THINK_CLOSE = "</think>"
_THINK_BLOCK = re.compile(r"<think>.*?</think>\s*", re.DOTALL)
_THINK_OPEN = re.compile(r"<think>.*", re.DOTALL)
_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")

_REASONING = re.compile(
    r"^(?:(?:okay|ok|alright|hmm|wait|maybe|alternatively|looking at|let me|let's|"
    r"i need to|i should|i'll|i will|i think|i have to|the user|user is asking|"
    r"the instructions)\b|so,)"
    r"|\b(?:the user(?:'s)? (?:is|wants|asked|question)|the instructions say|"
    r"i need to check|let me (?:check|think|see)|i should (?:check|mention|list))\b",
    re.IGNORECASE,
)
_ANSWER_MARKER = re.compile(r"^(?:[-•*]\s|#{1,6}\s|\*\*|[\U0001F300-\U0001FAFF☀-➿])")
_MIN_ANSWER_CHARS = 30


class ResponseSanitizer(Protocol):
    """Turns raw model output into user-facing text."""

    def clean(self, text: str) -> str:
        ...


class ReasoningLeakSanitizer:
    """Removes ``<think>`` blocks and untagged chain-of-thought preambles."""

    def clean(self, text: str) -> str:
        cleaned = text
        end = cleaned.rfind(_THINK_CLOSE)
        if end != -1:
            cleaned = cleaned[end + len(_THINK_CLOSE) :]
        cleaned = _THINK_BLOCK.sub("", cleaned)
        cleaned = _THINK_OPEN.sub("", cleaned).strip()
        return self._drop_reasoning_paragraphs(cleaned)

    @staticmethod
    def _drop_reasoning_paragraphs(text: str) -> str:
        paragraphs = [part.strip() for part in _PARAGRAPH_SPLIT.split(text) if part.strip()]
        flags = [is_reasoning(paragraph) for paragraph in paragraphs]
        if not any(flags):
            return text

        for index, (paragraph, reasoning) in enumerate(zip(paragraphs, flags, strict=True)):
            if reasoning:
                continue
            if _ANSWER_MARKER.match(paragraph) or len(paragraph) > _MIN_ANSWER_CHARS:
                return "\n\n".join(paragraphs[index:])
        return ""


def is_reasoning(paragraph: str) -> bool:
    return bool(_REASONING.search(paragraph))
