"""Bijian (Bilibili bcut) ASR.

Workflow: request upload -> upload parts -> commit -> create task -> poll.
The file is uploaded in ``per_size`` byte ranges, one per returned URL; the
part ETags are joined to commit the upload, which yields the download URL
the transcription task is created from.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from common.schemas import StandardResult
from asr_providers.errors import MalformedResponseError
from asr_providers.http import decode_json, ensure_success, new_client, require
from asr_providers.normalizers import normalize_bijian
from asr_providers.provider import Provider, RawResult
from asr_providers.workflow import Step, Workflow, WorkflowContext, poll

logger = logging.getLogger(__name__)

API_BASE_URL = "https://member.bilibili.com/x/bcut/rubick-interface"
API_REQ_UPLOAD = API_BASE_URL + "/resource/create"
API_COMMIT_UPLOAD = API_BASE_URL + "/resource/create/complete"
API_CREATE_TASK = API_BASE_URL + "/task"
API_QUERY_RESULT = API_BASE_URL + "/task/result"

USER_AGENT = "Bilibili/1.0.0 (https://www.bilibili.com)"
MODEL_ID = "8"
QUERY_MODEL_ID = "7"
STATE_COMPLETE = 4


@dataclass
class BijianOptions:
    # Optional auth cookie, forwarded verbatim
    cookie: str = ""

    def validate(self) -> None:
        return None


@dataclass
class _Session:
    audio_path: Path
    size: int = 0
    upload: dict[str, Any] = field(default_factory=dict)
    etags: list[str] = field(default_factory=list)
    download_url: str = ""
    task_id: str = ""
    result: RawResult = field(default_factory=dict)


def _data(resp: dict[str, Any]) -> dict[str, Any]:
    return require(resp, "data", dict)


async def _read_file(session: _Session, ctx: WorkflowContext) -> None:
    session.size = session.audio_path.stat().st_size


async def _request_upload(session: _Session, ctx: WorkflowContext) -> None:
    payload = {
        "type": 2,
        "name": "audio.mp3",
        "size": session.size,
        "ResourceFileType": "mp3",
        "model_id": MODEL_ID,
    }
    resp = await ctx.client.post(API_REQ_UPLOAD, json=payload)
    session.upload = _data(decode_json(resp))


async def _upload_parts(session: _Session, ctx: WorkflowContext) -> None:
    urls = require(session.upload, "upload_urls", list)
    per_size = int(require(session.upload, "per_size", (int, float)))
    if per_size <= 0:
        raise MalformedResponseError(f"invalid per_size: {per_size}")

    with open(session.audio_path, "rb") as fh:
        for i, url in enumerate(urls):
            if not isinstance(url, str):
                raise MalformedResponseError(f"invalid upload_url at index {i}")
            ctx.raise_if_cancelled()
            fh.seek(i * per_size)
            chunk = fh.read(per_size)
            resp = await ctx.client.put(url, content=chunk)
            ensure_success(resp)
            session.etags.append(resp.headers.get("Etag", ""))
            logger.debug("bijian: uploaded part %d/%d (%d bytes)", i + 1, len(urls), len(chunk))


async def _commit_upload(session: _Session, ctx: WorkflowContext) -> None:
    payload = {
        "InBossKey": session.upload.get("in_boss_key"),
        "ResourceId": session.upload.get("resource_id"),
        "Etags": ",".join(session.etags),
        "UploadId": session.upload.get("upload_id"),
        "model_id": MODEL_ID,
    }
    resp = await ctx.client.post(API_COMMIT_UPLOAD, json=payload)
    session.download_url = require(_data(decode_json(resp)), "download_url", str)


async def _create_task(session: _Session, ctx: WorkflowContext) -> None:
    payload = {"resource": session.download_url, "model_id": MODEL_ID}
    resp = await ctx.client.post(API_CREATE_TASK, json=payload)
    session.task_id = require(_data(decode_json(resp)), "task_id", str)
    logger.info("bijian: task created: %s", session.task_id)


def task_state(resp: dict[str, Any]) -> int | float:
    return require(_data(resp), "state", (int, float))


async def _poll_result(session: _Session, ctx: WorkflowContext) -> None:
    async def query() -> dict[str, Any]:
        resp = await ctx.client.get(
            API_QUERY_RESULT,
            params={"model_id": QUERY_MODEL_ID, "task_id": session.task_id},
        )
        return decode_json(resp)

    final = await poll(ctx, query, task_state, STATE_COMPLETE)
    raw = require(_data(final), "result", str)
    try:
        result = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"failed to parse result JSON: {exc}") from exc
    if not isinstance(result, dict):
        raise MalformedResponseError("result is not a JSON object")
    session.result = result


WORKFLOW: Workflow[_Session] = Workflow("bijian", [
    Step("read_file", "failed to read audio file", _read_file),
    Step("request_upload", "failed to request upload", _request_upload),
    Step("upload_parts", "failed to upload parts", _upload_parts),
    Step("commit_upload", "failed to commit upload", _commit_upload),
    Step("create_task", "failed to create task", _create_task),
    Step("poll_result", "failed to poll result", _poll_result),
])


class BijianProvider(Provider):
    """Character-level word timings plus sentence segmentation."""

    name = "bijian"
    options_type = BijianOptions

    async def _fetch(
        self,
        audio_path: Path,
        options: BijianOptions,
        cancel: asyncio.Event | None,
    ) -> RawResult:
        headers = {"User-Agent": USER_AGENT}
        if options.cookie:
            headers["Cookie"] = options.cookie
        session = _Session(audio_path=audio_path)
        async with new_client(self.settings, self.transport, headers) as client:
            ctx = WorkflowContext(client=client, settings=self.settings, cancel=cancel)
            await WORKFLOW.run(session, ctx)
        return session.result

    def parse(self, raw: RawResult) -> StandardResult:
        return normalize_bijian(raw)
