"""Generation client interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from oap_chat.models import GenerationRequest, GenerationResponse


class GenerationClient(ABC):
    """Stateless request/response wrapper around a hosted generation model."""

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Generate a model response.

        Raises:
            GenerationError: on any transport or protocol failure.
        """
