"""Sequential step runner shared by every provider.

A backend's acquisition protocol is an ordered list of named async steps.
Each step reads and updates a per-call session object; the runner stops at
the first failing step and reports it as a FetchError tagged with the step
name. The bounded poll loop used by the task-based backends lives here too,
so cancellation and the attempt cap behave the same for every backend.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

import httpx

from common.config import FetchSettings
from asr_providers.errors import FetchCancelledError, FetchError, PollTimeoutError

logger = logging.getLogger(__name__)

S = TypeVar("S")


@dataclass
class WorkflowContext:
    client: httpx.AsyncClient
    settings: FetchSettings
    cancel: asyncio.Event | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise FetchCancelledError("fetch cancelled by caller")

    async def sleep(self, seconds: float) -> None:
        """Sleep, waking early if the cancellation event fires."""
        if self.cancel is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(self.cancel.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass


@dataclass(frozen=True)
class Step(Generic[S]):
    name: str
    message: str
    run: Callable[[S, WorkflowContext], Awaitable[None]]


class Workflow(Generic[S]):
    def __init__(self, provider: str, steps: list[Step[S]]):
        self.provider = provider
        self.steps = steps

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self.steps]

    async def run(self, session: S, ctx: WorkflowContext) -> S:
        logger.info("%s: starting workflow (%d steps)", self.provider, len(self.steps))
        for step in self.steps:
            try:
                ctx.raise_if_cancelled()
                logger.debug("%s: step %s", self.provider, step.name)
                await step.run(session, ctx)
            except Exception as exc:
                logger.info("%s: step %s failed: %s", self.provider, step.name, exc)
                raise FetchError(step.name, step.message, exc) from exc
        logger.info("%s: workflow complete", self.provider)
        return session


async def poll(
    ctx: WorkflowContext,
    query: Callable[[], Awaitable[Any]],
    status_of: Callable[[Any], Any],
    done: Any,
) -> Any:
    """Call ``query`` until ``status_of(response) == done``.

    Attempts are spaced by ``poll_interval_s`` and capped at
    ``poll_max_attempts``. ``status_of`` raises for a missing or malformed
    status, which ends the loop immediately.
    """
    max_attempts = ctx.settings.poll_max_attempts
    for attempt in range(1, max_attempts + 1):
        ctx.raise_if_cancelled()
        resp = await query()
        status = status_of(resp)
        if status == done:
            logger.debug("poll complete after %d attempts", attempt)
            return resp
        logger.debug("poll attempt %d/%d: status=%r", attempt, max_attempts, status)
        if attempt < max_attempts:
            await ctx.sleep(ctx.settings.poll_interval_s)
    raise PollTimeoutError(max_attempts)
