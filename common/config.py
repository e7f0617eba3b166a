from pydantic_settings import BaseSettings


class FetchSettings(BaseSettings):
    poll_interval_s: float = 1.0
    poll_max_attempts: int = 500
    request_timeout_s: float = 7200.0

    model_config = {"env_prefix": "ASR_"}
