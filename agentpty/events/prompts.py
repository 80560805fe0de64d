"""Prompt descriptors shared by adapters and prompt events."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PromptKind(str, Enum):
    PERMISSION = "permission"
    QUESTION = "question"
    INPUT = "input"


@dataclass(frozen=True)
class PromptInfo:
    """A prompt the agent is showing; *position* is its offset in the text."""
    kind: PromptKind
    text: str
    position: int = 0
