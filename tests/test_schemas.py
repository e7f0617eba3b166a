import pydantic
import pytest

from common.config import FetchSettings
from common.schemas import Sentence, StandardResult, Word


class TestSchemas:
    def test_word_times_validated(self):
        with pytest.raises(pydantic.ValidationError):
            Word(text="a", start=5, end=4)
        with pytest.raises(pydantic.ValidationError):
            Word(text="a", start=-1, end=4)

    def test_zero_length_word_allowed(self):
        assert Word(text="a", start=3, end=3).end == 3

    def test_result_roundtrip(self):
        result = StandardResult(
            text="hi",
            words=[Word(text="hi", start=0, end=100, speaker_id="A")],
            sentences=[Sentence(text="hi", start=0, end=100)],
            language="en",
        )
        data = result.model_dump()
        assert data["words"][0]["speaker_id"] == "A"
        assert data["sentences"][0]["speaker_id"] is None
        assert StandardResult.model_validate(data) == result


class TestSettings:
    def test_defaults(self):
        settings = FetchSettings()
        assert settings.poll_interval_s == 1.0
        assert settings.poll_max_attempts == 500
        assert settings.request_timeout_s == 7200.0

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("ASR_POLL_MAX_ATTEMPTS", "12")
        assert FetchSettings().poll_max_attempts == 12
