"""Base provider interface for LLM implementations."""

from abc import ABC, abstractmethod
from typing import Dict, List


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    A provider performs exactly one chat completion against one deployment.
    Retries, failover and parsing are handled by the classification client
    so that every provider behaves the same way under failure.
    """

    @abstractmethod
    def complete(
        self,
        deployment: str,
        messages: List[Dict[str, str]],
        max_tokens: int,
        temperature: float = 0.0,
    ) -> str:
        """Send a chat request and return the raw text of the reply.

        Args:
            deployment: Model or deployment name to call.
            messages: Chat messages, each with 'role' and 'content'.
            max_tokens: Upper bound on the reply size.
            temperature: Sampling temperature.

        Returns:
            The reply text, unparsed.

        Raises:
            OracleError: If the call failed, carrying the HTTP status and any
                retry-after hint.
        """
        pass
