"""Map each backend's decoded JSON onto the canonical transcript model."""

from __future__ import annotations

import math
from typing import Any, Optional

import pydantic

from common.schemas import StandardResult
from asr_providers.errors import ParseError


def _root(value: Any) -> dict:
    if not isinstance(value, dict):
        raise ParseError(f"invalid raw result type {type(value).__name__}, expected a JSON object")
    return value


def _object(value: Any, field: str) -> dict:
    if not isinstance(value, dict):
        raise ParseError(f"missing {field} field in response")
    return value


def _list(container: dict, key: str, field: str) -> list:
    value = container.get(key)
    if not isinstance(value, list):
        raise ParseError(f"missing {field} field in response")
    return value


def _number(item: dict, key: str, field: str) -> float:
    value = item.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ParseError(f"invalid {field}: {value!r}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ParseError(f"invalid {field}: {value!r}")
    return value


def _text(item: dict, key: str) -> str:
    value = item.get(key)
    return value if isinstance(value, str) else ""


def _speaker(item: dict, key: str = "speaker") -> Optional[str]:
    attribute = item.get("attribute")
    if not isinstance(attribute, dict):
        return None
    speaker = attribute.get(key)
    return speaker if isinstance(speaker, str) and speaker else None


def seconds_to_ms(value: float) -> int:
    return int(value * 1000)


def _seconds(item: dict, key: str, field: str) -> int:
    value = _number(item, key, field)
    if isinstance(value, float) and not math.isfinite(value * 1000):
        raise ParseError(f"invalid {field}: {value!r} out of range")
    return seconds_to_ms(value)


def _build(**kwargs) -> StandardResult:
    if not kwargs["words"]:
        raise ParseError("no words found in response")
    try:
        return StandardResult(**kwargs)
    except pydantic.ValidationError as exc:
        raise ParseError("invalid timestamps in response", exc) from exc


def normalize_elevenlabs(response: dict[str, Any]) -> StandardResult:
    """ElevenLabs: full text plus word timings in fractional seconds."""
    response = _root(response)
    text = response.get("text")
    if not isinstance(text, str):
        raise ParseError("missing text field in response")
    words = []
    for i, item in enumerate(_list(response, "words", "words")):
        if not isinstance(item, dict):
            continue
        speaker = item.get("speaker_id")
        words.append(dict(
            text=_text(item, "text"),
            start=_seconds(item, "start", f"words[{i}].start"),
            end=_seconds(item, "end", f"words[{i}].end"),
            speaker_id=speaker if isinstance(speaker, str) and speaker else None,
        ))
    language = response.get("language_code")
    return _build(
        text=text,
        words=words,
        language=language if isinstance(language, str) else None,
    )


def normalize_bijian(response: dict[str, Any]) -> StandardResult:
    """Bijian: utterances with transcript and label-keyed words, all in ms."""
    response = _root(response)
    words: list[dict] = []
    sentences: list[dict] = []
    parts: list[str] = []
    for i, utt in enumerate(_list(response, "utterances", "utterances")):
        if not isinstance(utt, dict):
            continue
        transcript = _text(utt, "transcript")
        if transcript:
            parts.append(transcript)
            sentences.append(dict(
                text=transcript,
                start=int(_number(utt, "start_time", f"utterances[{i}].start_time")),
                end=int(_number(utt, "end_time", f"utterances[{i}].end_time")),
            ))
        raw_words = utt.get("words")
        if not isinstance(raw_words, list):
            continue
        for j, item in enumerate(raw_words):
            if not isinstance(item, dict):
                continue
            where = f"utterances[{i}].words[{j}]"
            words.append(dict(
                text=_text(item, "label"),
                start=int(_number(item, "start_time", f"{where}.start_time")),
                end=int(_number(item, "end_time", f"{where}.end_time")),
            ))
    return _build(text="".join(parts), words=words, sentences=sentences)


def normalize_jianying(response: dict[str, Any]) -> StandardResult:
    """JianYing: ``data.utterances`` in ms, optional speakers and language."""
    data = _object(_root(response).get("data"), "data")
    utterances = _list(data, "utterances", "utterances")

    language = None
    attribute = data.get("attribute")
    if isinstance(attribute, dict) and isinstance(attribute.get("extra"), dict):
        lang = attribute["extra"].get("language")
        if isinstance(lang, str):
            language = lang

    words: list[dict] = []
    sentences: list[dict] = []
    parts: list[str] = []
    for i, utt in enumerate(utterances):
        if not isinstance(utt, dict):
            continue
        text = _text(utt, "text")
        if text:
            parts.append(text)
            sentences.append(dict(
                text=text,
                start=int(_number(utt, "start_time", f"utterances[{i}].start_time")),
                end=int(_number(utt, "end_time", f"utterances[{i}].end_time")),
                speaker_id=_speaker(utt),
            ))
        raw_words = utt.get("words")
        if not isinstance(raw_words, list):
            continue
        for j, item in enumerate(raw_words):
            if not isinstance(item, dict):
                continue
            where = f"utterances[{i}].words[{j}]"
            words.append(dict(
                text=_text(item, "text"),
                start=int(_number(item, "start_time", f"{where}.start_time")),
                end=int(_number(item, "end_time", f"{where}.end_time")),
                speaker_id=_speaker(item),
            ))
    return _build(text="".join(parts), words=words, sentences=sentences, language=language)
