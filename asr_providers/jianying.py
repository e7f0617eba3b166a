"""JianYing (CapCut desktop) ASR.

The upload goes through ByteDance VOD storage: temporary credentials come
from the signed JianYing API, upload authorization from the VOD host
(SigV4-signed), then the raw bytes are PUT to the returned upload host,
verified by CRC32 and committed. The subtitle task is submitted against the
stored object and queried until it carries utterances.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx

from common.schemas import StandardResult
from asr_providers import signing
from asr_providers.errors import MalformedResponseError, ValidationError
from asr_providers.http import decode_json, new_client, require
from asr_providers.normalizers import normalize_jianying
from asr_providers.provider import Provider, RawResult
from asr_providers.workflow import Step, Workflow, WorkflowContext, poll

logger = logging.getLogger(__name__)

API_BASE_URL = "https://lv-pc-api-sinfonlinec.ulikecam.com"
PATH_UPLOAD_SIGN = "/lv/v1/upload_sign"
PATH_SUBMIT = "/lv/v1/audio_subtitle/submit"
PATH_QUERY = "/lv/v1/audio_subtitle/query"
VOD_BASE_URL = "https://vod.bytedanceapi.com"
VOD_REGION = "cn"
VOD_SERVICE = "vod"
UPLOAD_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/81.0.4044.138 Safari/537.36 Thea/1.0.1"
)
CLIENT_REQUEST_ID = "45faf98c-160f-4fae-a649-6d89b0fe35be"
DEFAULT_END_TIME = 6000.0

STATUS_DONE = "done"
STATUS_PENDING = "pending"


@dataclass
class JianyingOptions:
    # Seconds; a zero end_time means DEFAULT_END_TIME
    start_time: float = 0.0
    end_time: float = 0.0

    def validate(self) -> None:
        if self.end_time == 0:
            self.end_time = DEFAULT_END_TIME
        if self.start_time < 0:
            raise ValidationError("start_time", "must be non-negative")
        if self.end_time < 0:
            raise ValidationError("end_time", "must be non-negative")
        if self.start_time >= self.end_time:
            raise ValidationError("start_time/end_time", "start_time must be less than end_time")


@dataclass
class _Session:
    audio_path: Path
    options: JianyingOptions
    tdid: str
    size: int = 0
    crc32: str = ""
    access_key: str = ""
    secret_key: str = ""
    session_token: str = ""
    store_uri: str = ""
    auth: str = ""
    upload_id: str = ""
    session_key: str = ""
    upload_host: str = ""
    query_id: str = ""
    result: RawResult = field(default_factory=dict)

    @property
    def store_url(self) -> str:
        return f"https://{self.upload_host}/{self.store_uri}"

    def storage_headers(self) -> dict[str, str]:
        return {
            "User-Agent": UPLOAD_UA,
            "Authorization": self.auth,
            "Content-CRC32": self.crc32,
        }


def _string(mapping: dict[str, Any], key: str) -> str:
    value = mapping.get(key)
    return value if isinstance(value, str) else ""


async def _signed_post(ctx: WorkflowContext, path: str, tdid: str, payload: dict[str, Any]) -> dict[str, Any]:
    """POST to the JianYing API host with the template signature headers."""
    resp = await ctx.client.post(
        API_BASE_URL + path,
        json=payload,
        headers=signing.sign_headers(path, tdid),
    )
    result = decode_json(resp, allow_empty=True)
    ret = result.get("ret")
    # ret is a string code; a numeric 0 is not success
    if ret != "0":
        raise MalformedResponseError(
            f"API returned error: ret={ret}, errmsg={_string(result, 'errmsg')}"
        )
    return result


def _check_storage_reply(resp: httpx.Response, *, required: bool) -> None:
    result = decode_json(resp, allow_empty=not required)
    if required and not result:
        raise MalformedResponseError("empty response body")
    success = result.get("success")
    if (required or success is not None) and success != 0:
        raise MalformedResponseError(f"unexpected success value: {success!r}")


async def _read_file(session: _Session, ctx: WorkflowContext) -> None:
    session.size = session.audio_path.stat().st_size
    session.crc32 = signing.file_crc32(session.audio_path)


async def _upload_sign(session: _Session, ctx: WorkflowContext) -> None:
    resp = await _signed_post(ctx, PATH_UPLOAD_SIGN, session.tdid, {"biz": "pc-recognition"})
    data = require(resp, "data", dict)
    session.access_key = _string(data, "access_key_id")
    session.secret_key = _string(data, "secret_access_key")
    session.session_token = _string(data, "session_token")


def upload_auth_query(size: int) -> str:
    return (
        f"Action=ApplyUploadInner&FileSize={size}&FileType=object&IsInner=1"
        "&SpaceName=lv-mac-recognition&Version=2020-11-19&s=5y0udbjapi"
    )


async def _upload_auth(session: _Session, ctx: WorkflowContext) -> None:
    query = upload_auth_query(session.size)
    now = datetime.now(timezone.utc)
    headers = {
        "x-amz-date": now.strftime("%Y%m%dT%H%M%SZ"),
        "x-amz-security-token": session.session_token,
    }
    signature, signed_headers = signing.aws_signature(
        session.secret_key, query, headers, "GET", "", VOD_REGION, VOD_SERVICE
    )
    headers["authorization"] = signing.authorization_header(
        session.access_key, signature, now.strftime("%Y%m%d"),
        VOD_REGION, VOD_SERVICE, signed_headers,
    )
    resp = await ctx.client.get(f"{VOD_BASE_URL}/?{query}", headers=headers)

    result = require(decode_json(resp), "Result", dict)
    address = require(result, "UploadAddress", dict, "Result")
    store_infos = require(address, "StoreInfos", list, "UploadAddress")
    hosts = require(address, "UploadHosts", list, "UploadAddress")
    if not store_infos or not isinstance(store_infos[0], dict):
        raise MalformedResponseError("missing or empty StoreInfos")
    if not hosts or not isinstance(hosts[0], str):
        raise MalformedResponseError("missing or empty UploadHosts")

    store = store_infos[0]
    session.store_uri = _string(store, "StoreUri")
    session.auth = _string(store, "Auth")
    session.upload_id = _string(store, "UploadID")
    session.session_key = _string(address, "SessionKey")
    session.upload_host = hosts[0]


async def _upload_file(session: _Session, ctx: WorkflowContext) -> None:
    headers = session.storage_headers()
    headers["Content-Type"] = "application/octet-stream"
    with open(session.audio_path, "rb") as fh:
        content = fh.read()
    resp = await ctx.client.put(
        session.store_url,
        params={"partNumber": "1", "uploadID": session.upload_id},
        content=content,
        headers=headers,
    )
    _check_storage_reply(resp, required=True)


async def _upload_check(session: _Session, ctx: WorkflowContext) -> None:
    resp = await ctx.client.post(
        session.store_url,
        params={"uploadID": session.upload_id},
        content=f"1:{session.crc32}".encode(),
        headers=session.storage_headers(),
    )
    _check_storage_reply(resp, required=False)


async def _upload_commit(session: _Session, ctx: WorkflowContext) -> None:
    headers = session.storage_headers()
    headers["Content-Type"] = "application/xml"
    with open(session.audio_path, "rb") as fh:
        content = fh.read()
    resp = await ctx.client.put(
        session.store_url,
        params={"uploadID": session.upload_id, "x-amz-security-token": session.session_token},
        content=content,
        headers=headers,
    )
    _check_storage_reply(resp, required=False)


async def _submit_task(session: _Session, ctx: WorkflowContext) -> None:
    payload = {
        "adjust_endtime": 200,
        "audio": session.store_uri,
        "caption_type": 2,
        "client_request_id": CLIENT_REQUEST_ID,
        "max_lines": 1,
        "songs_info": [{
            "end_time": session.options.end_time,
            "id": "",
            "start_time": session.options.start_time,
        }],
        "words_per_line": 16,
    }
    resp = await _signed_post(ctx, PATH_SUBMIT, session.tdid, payload)
    session.query_id = _string(require(resp, "data", dict), "id")
    if not session.query_id:
        raise MalformedResponseError("missing id field in data")
    logger.info("jianying: task submitted: %s", session.query_id)


def query_status(resp: dict[str, Any]) -> str:
    """The query has no status field; a result carrying utterances is done."""
    data = require(resp, "data", dict)
    return STATUS_DONE if isinstance(data.get("utterances"), list) else STATUS_PENDING


async def _query_result(session: _Session, ctx: WorkflowContext) -> None:
    payload = {"id": session.query_id, "pack_options": {"need_attribute": True}}

    async def query() -> dict[str, Any]:
        return await _signed_post(ctx, PATH_QUERY, session.tdid, payload)

    session.result = await poll(ctx, query, query_status, STATUS_DONE)


WORKFLOW: Workflow[_Session] = Workflow("jianying", [
    Step("read_file", "failed to read audio file", _read_file),
    Step("upload_sign", "failed to get upload signature", _upload_sign),
    Step("upload_auth", "failed to get upload authorization", _upload_auth),
    Step("upload_file", "failed to upload file", _upload_file),
    Step("upload_check", "failed to check upload", _upload_check),
    Step("upload_commit", "failed to commit upload", _upload_commit),
    Step("submit_task", "failed to submit task", _submit_task),
    Step("query_result", "failed to query result", _query_result),
])


class JianyingProvider(Provider):
    """Phrase-level word timings, sentences, speakers and language."""

    name = "jianying"
    options_type = JianyingOptions

    async def _fetch(
        self,
        audio_path: Path,
        options: JianyingOptions,
        cancel: asyncio.Event | None,
    ) -> RawResult:
        session = _Session(audio_path=audio_path, options=options, tdid=signing.generate_device_id())
        async with new_client(self.settings, self.transport) as client:
            ctx = WorkflowContext(client=client, settings=self.settings, cancel=cancel)
            await WORKFLOW.run(session, ctx)
        return session.result

    def parse(self, raw: RawResult) -> StandardResult:
        return normalize_jianying(raw)
