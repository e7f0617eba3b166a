"""Default provider registry and the fetch-then-parse convenience."""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path

from common.config import FetchSettings
from common.schemas import StandardResult
from asr_providers.bijian import BijianProvider
from asr_providers.elevenlabs import ElevenLabsProvider
from asr_providers.errors import TranscribeError, TranscriptionError
from asr_providers.jianying import JianyingProvider
from asr_providers.provider import FetchOptions, Provider
from asr_providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

BUILTIN_PROVIDERS: tuple[type[Provider], ...] = (
    ElevenLabsProvider,
    BijianProvider,
    JianyingProvider,
)


def build_registry(settings: FetchSettings | None = None) -> ProviderRegistry:
    """A fresh registry holding one instance of each built-in provider."""
    registry = ProviderRegistry()
    for provider_cls in BUILTIN_PROVIDERS:
        registry.register(provider_cls(settings=settings))
    return registry


_default_registry: ProviderRegistry | None = None
_default_lock = threading.Lock()


def default_registry() -> ProviderRegistry:
    global _default_registry
    if _default_registry is None:
        with _default_lock:
            if _default_registry is None:
                _default_registry = build_registry()
    return _default_registry


async def transcribe(
    provider_name: str,
    audio_path: str | Path,
    options: FetchOptions | None = None,
    *,
    registry: ProviderRegistry | None = None,
    cancel: asyncio.Event | None = None,
) -> StandardResult:
    """Fetch with the named provider, then parse.

    Raises ProviderNotFoundError for an unknown name and TranscribeError,
    tagged with the failing phase, for anything that fails afterwards.
    """
    provider = (registry or default_registry()).get(provider_name)

    try:
        raw = await provider.fetch(audio_path, options, cancel=cancel)
    except TranscriptionError as exc:
        raise TranscribeError("fetch", exc) from exc

    try:
        result = provider.parse(raw)
    except TranscriptionError as exc:
        raise TranscribeError("parse", exc) from exc

    logger.info("%s: transcribed %s (%d words)", provider_name, audio_path, len(result.words))
    return result
