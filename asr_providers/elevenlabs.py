"""ElevenLabs speech-to-text: one multipart POST returns the transcript."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from faker import Faker

from common.schemas import StandardResult
from asr_providers.errors import MalformedResponseError
from asr_providers.http import decode_json, new_client
from asr_providers.normalizers import normalize_elevenlabs
from asr_providers.provider import Provider, RawResult
from asr_providers.workflow import Step, Workflow, WorkflowContext

logger = logging.getLogger(__name__)

API_URL = "https://api.elevenlabs.io/v1/speech-to-text"
MODEL_ID = "scribe_v1"

_fake = Faker()


@dataclass
class ElevenLabsOptions:
    # "auto" leaves detection to the backend
    language_code: str = ""
    tag_audio_events: bool = False

    def validate(self) -> None:
        if not self.language_code:
            self.language_code = "auto"


@dataclass
class _Session:
    audio_path: Path
    options: ElevenLabsOptions
    result: RawResult = field(default_factory=dict)


def browser_headers() -> dict[str, str]:
    """Plausible browser headers; randomized per request."""
    return {
        "accept": "*/*",
        "accept-encoding": "gzip, deflate",
        "accept-language": f"{_fake.language_code()},{_fake.language_code()};q=0.9,en;q=0.8",
        "origin": "https://elevenlabs.io",
        "referer": "https://elevenlabs.io/",
        "sec-fetch-dest": "empty",
        "sec-fetch-mode": "cors",
        "sec-fetch-site": "same-site",
        "user-agent": _fake.user_agent(),
    }


def form_fields(options: ElevenLabsOptions) -> dict[str, str]:
    fields = {
        "model_id": MODEL_ID,
        "diarize": "true",
        "tag_audio_events": "true" if options.tag_audio_events else "false",
    }
    if options.language_code and options.language_code != "auto":
        fields["language_code"] = options.language_code
    return fields


async def _check_file(session: _Session, ctx: WorkflowContext) -> None:
    if not session.audio_path.is_file():
        raise FileNotFoundError(f"audio file not found: {session.audio_path}")


async def _transcribe(session: _Session, ctx: WorkflowContext) -> None:
    logger.info("elevenlabs: uploading %s (language=%s)", session.audio_path.name, session.options.language_code)
    with open(session.audio_path, "rb") as fh:
        resp = await ctx.client.post(
            API_URL,
            params={"allow_unauthenticated": "1"},
            data=form_fields(session.options),
            files={"file": (session.audio_path.name, fh)},
            headers=browser_headers(),
        )
    result = decode_json(resp)
    if not result:
        raise MalformedResponseError("empty transcription response")
    session.result = result


WORKFLOW: Workflow[_Session] = Workflow("elevenlabs", [
    Step("read_file", "audio file not accessible", _check_file),
    Step("transcribe", "transcription request failed", _transcribe),
])


class ElevenLabsProvider(Provider):
    """Word timings with speaker diarization; no sentence segmentation."""

    name = "elevenlabs"
    options_type = ElevenLabsOptions

    async def _fetch(
        self,
        audio_path: Path,
        options: ElevenLabsOptions,
        cancel: asyncio.Event | None,
    ) -> RawResult:
        session = _Session(audio_path=audio_path, options=options)
        async with new_client(self.settings, self.transport) as client:
            ctx = WorkflowContext(client=client, settings=self.settings, cancel=cancel)
            await WORKFLOW.run(session, ctx)
        return session.result

    def parse(self, raw: RawResult) -> StandardResult:
        return normalize_elevenlabs(raw)
