"""Provider contract shared by every ASR backend."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, ClassVar, Protocol

import httpx

from common.config import FetchSettings
from common.schemas import StandardResult
from asr_providers.errors import ValidationError

RawResult = dict[str, Any]


class FetchOptions(Protocol):
    def validate(self) -> None:
        """Fill defaults in place; raise ValidationError on a bad value."""
        ...


class Provider(ABC):
    """One ASR backend: runs its remote workflow and normalizes the result.

    Subclasses set ``name`` (the registry key) and ``options_type``, and
    implement ``_fetch`` and ``parse``.
    """

    name: ClassVar[str]
    options_type: ClassVar[type]

    def __init__(
        self,
        settings: FetchSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or FetchSettings()
        self.transport = transport

    def prepare_options(self, options: FetchOptions | None) -> FetchOptions:
        if options is None:
            options = self.options_type()
        elif not isinstance(options, self.options_type):
            raise ValidationError(
                "options",
                f"expected {self.options_type.__name__}, got {type(options).__name__}",
            )
        options.validate()
        return options

    async def fetch(
        self,
        audio_path: str | Path,
        options: FetchOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> RawResult:
        """Run the backend workflow and return the raw decoded response.

        Options are validated before any network call. ``cancel`` is checked
        before every step and every poll attempt.
        """
        options = self.prepare_options(options)
        return await self._fetch(Path(audio_path), options, cancel)

    @abstractmethod
    async def _fetch(
        self,
        audio_path: Path,
        options: Any,
        cancel: asyncio.Event | None,
    ) -> RawResult:
        ...

    @abstractmethod
    def parse(self, raw: RawResult) -> StandardResult:
        """Normalize a raw response into the canonical model."""
        ...
