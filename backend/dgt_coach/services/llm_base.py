"""
DGT Coach Backend: Abstract LLM Service Interface
===================================================

What:  The contract between AnalysisService and the generative model provider,
       plus the provider-neutral prompt types that cross it.
How:   Concrete implementations inherit from LLMService and implement generate().
Who:   GeminiService in production; test doubles in the test suite.

The service instance is built once by the app factory and handed to the
route through `app.state`, never imported as a module-level singleton, so
tests can inject a fake that succeeds, fails or stalls without network.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class ContentPart:
    """
    One unit of the user turn: either a text segment or an inline blob.

    Exactly one of `text` or (`mime_type`, `data`) is set.
    """

    text: Optional[str] = None
    mime_type: Optional[str] = None
    data: Optional[bytes] = None

    @classmethod
    def from_text(cls, text: str) -> "ContentPart":
        return cls(text=text)

    @classmethod
    def from_blob(cls, mime_type: str, data: bytes) -> "ContentPart":
        return cls(mime_type=mime_type, data=data)

    @property
    def is_blob(self) -> bool:
        return self.data is not None


@dataclass(frozen=True)
class UpstreamPrompt:
    """
    Everything needed for one upstream call.

    Attributes:
        system_instruction: Behavioural contract for the model
        parts:              Ordered content parts of the single user turn
        json_output:        Ask the model for strict JSON (response_mime_type)
    """

    system_instruction: str
    parts: List[ContentPart] = field(default_factory=list)
    json_output: bool = False


class LLMService(ABC):
    """
    Abstract interface for the multimodal model behind the relay.

    Contract:
        - generate() makes one upstream call and returns the reply text
        - Provider errors are translated to UpstreamServiceError
        - A reply without text raises EmptyUpstreamResponseError
        - Implementations keep no per-request state between calls
    """

    @abstractmethod
    async def generate(self, prompt: UpstreamPrompt) -> str:
        """
        Send one prompt upstream and return the raw reply text.

        Args:
            prompt: System instruction, content parts and output-format flag.

        Returns:
            str: Non-empty reply text, exactly as the model produced it.

        Raises:
            UpstreamServiceError: Non-success status from the provider, or the
                provider cannot be called (no API key).
            EmptyUpstreamResponseError: Success status but no text in the reply.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Report whether the service is configured to make calls.

        Must not consume API quota.
        """
        ...
