"""OpenAI provider implementation, for both OpenAI and Azure OpenAI deployments."""

from typing import Dict, List, Optional

import openai
from openai import AzureOpenAI, OpenAI

from errors import OracleError
from llm.providers.base import LLMProvider
from logger import get_logger

logger = get_logger()


class OpenAIProvider(LLMProvider):
    """Chat completions through the openai SDK.

    The SDK's own retries are switched off; the classification client owns
    retry and failover policy.
    """

    def __init__(
        self,
        api_key: str,
        endpoint: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: float = 60.0,
    ):
        """Initialize OpenAI provider.

        Args:
            api_key: API key for OpenAI or the Azure resource.
            endpoint: Azure OpenAI endpoint. When set, deployments are Azure
                     deployment names; otherwise they are OpenAI model names.
            api_version: Azure API version.
            timeout: Per-request timeout in seconds.
        """
        if endpoint:
            self.client = AzureOpenAI(
                api_key=api_key,
                azure_endpoint=endpoint,
                api_version=api_version or "2024-06-01",
                max_retries=0,
                timeout=timeout,
            )
        else:
            self.client = OpenAI(api_key=api_key, max_retries=0, timeout=timeout)

    def complete(
        self,
        deployment: str,
        messages: List[Dict[str, str]],
        max_tokens: int,
        temperature: float = 0.0,
    ) -> str:
        try:
            response = self.client.chat.completions.create(
                model=deployment,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.APIStatusError as e:
            raise OracleError(
                f"{deployment} returned {e.status_code}: {e.message}",
                status_code=e.status_code,
                retry_after=_retry_after(e.response.headers),
            ) from e
        except openai.APIError as e:
            # Connection failures and timeouts carry no status
            raise OracleError(f"{deployment} request failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if content is None:
            raise OracleError(f"{deployment} returned an empty completion", status_code=502)
        return content


def _retry_after(headers) -> Optional[float]:
    """Seconds to wait according to Retry-After / retry-after-ms headers."""
    if headers is None:
        return None
    millis = headers.get("retry-after-ms")
    if millis:
        try:
            return float(millis) / 1000.0
        except ValueError:
            pass
    seconds = headers.get("retry-after")
    if seconds:
        try:
            return float(seconds)
        except ValueError:
            logger.debug(f"Ignoring non-numeric Retry-After header: {seconds!r}")
    return None
