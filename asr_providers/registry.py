from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from asr_providers.errors import ProviderNotFoundError
from asr_providers.provider import Provider

logger = logging.getLogger(__name__)


class _ReadWriteLock:
    """Many readers or one writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class ProviderRegistry:
    def __init__(self) -> None:
        self._providers: dict[str, Provider] = {}
        self._lock = _ReadWriteLock()

    def register(self, provider: Provider) -> None:
        """Add ``provider``, replacing any provider with the same name."""
        with self._lock.write():
            self._providers[provider.name] = provider
        logger.debug("Provider registered: %s", provider.name)

    def get(self, name: str) -> Provider:
        with self._lock.read():
            provider = self._providers.get(name)
        if provider is None:
            raise ProviderNotFoundError(name)
        return provider

    def list(self) -> list[str]:
        with self._lock.read():
            return list(self._providers)
