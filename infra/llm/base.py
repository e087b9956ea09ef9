from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional, Union

from api.schemas.message_schemas import MessagePart, UIMessage


@dataclass
class GenerationResult:
    """Final event of a generation stream."""

    text: str
    model_id: str
    total_tokens: Optional[int] = None
    parts: List[MessagePart] = field(default_factory=list)


class TextGenerator(ABC):
    """
    Defines the contract for streaming generators.

    `stream` yields text deltas (str) as they arrive and then exactly one GenerationResult.
    """

    @abstractmethod
    def stream(self, system_prompt: str, messages: List[UIMessage]) -> AsyncIterator[Union[str, GenerationResult]]:
        raise NotImplementedError
