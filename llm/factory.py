"""Factory for creating LLM provider instances."""

from typing import Optional
from config import Config
from llm.providers.base import LLMProvider
from llm.providers.openai import OpenAIProvider
from logger import get_logger

logger = get_logger()


def get_llm_provider(config: Config) -> Optional[LLMProvider]:
    """Create an LLM provider instance based on configuration.

    Args:
        config: Application configuration.

    Returns:
        LLMProvider instance, or None if LLM is disabled.

    Raises:
        ValueError: If provider is configured but settings are invalid.
    """
    if not config.llm_enabled:
        logger.info("LLM classification is disabled")
        return None

    provider_name = config.llm_provider

    if provider_name in ("openai", "azure"):
        if not config.llm_api_key:
            raise ValueError(f"{provider_name} provider selected but llm api_key not configured")
        if provider_name == "azure" and not config.llm_endpoint:
            raise ValueError("azure provider selected but llm endpoint not configured")
        if not config.llm_deployments:
            raise ValueError("No LLM deployments configured")

        logger.info(
            f"Initializing {provider_name} provider "
            f"(deployments: {', '.join(config.llm_deployments)})"
        )
        return OpenAIProvider(
            api_key=config.llm_api_key,
            endpoint=config.llm_endpoint if provider_name == "azure" else None,
            api_version=config.llm_api_version,
        )

    elif provider_name is None:
        logger.info("No LLM provider configured")
        return None

    else:
        raise ValueError(f"Unknown LLM provider: {provider_name}")
