"""
Provider adapters and the factory that builds them from settings.
"""
import logging

from ..config import Settings
from ..provider import ProviderAdapter
from .gemini import GeminiAdapter
from .lmstudio import LMStudioAdapter
from .ollama import OllamaAdapter

logger = logging.getLogger(__name__)

__all__ = ["GeminiAdapter", "LMStudioAdapter", "OllamaAdapter", "build_adapters"]


def build_adapters(settings: Settings) -> list[ProviderAdapter]:
    """
    Build the configured provider adapters.

    LM Studio and Ollama are always registered; they are local and simply
    report offline when not running. Gemini needs an API key.
    """
    adapters: list[ProviderAdapter] = [
        LMStudioAdapter(
            base_url=settings.lmstudio_url,
            default_model=settings.lmstudio_model,
            status_timeout=settings.status_timeout,
            chat_timeout=settings.chat_timeout,
        ),
        OllamaAdapter(
            base_url=settings.ollama_url,
            default_model=settings.ollama_model,
            status_timeout=settings.status_timeout,
            chat_timeout=settings.chat_timeout,
        ),
    ]

    if settings.is_gemini_configured:
        adapters.append(GeminiAdapter(
            api_key=settings.gemini_api_key,
            base_url=settings.gemini_base_url,
            default_model=settings.gemini_model,
            status_timeout=settings.status_timeout,
            chat_timeout=settings.chat_timeout,
        ))
    else:
        logger.info("GEMINI_API_KEY not set, Gemini provider disabled")

    return adapters
