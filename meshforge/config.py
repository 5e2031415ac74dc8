from pydantic import BaseModel
import os

from .errors import ConfigError

PLACEHOLDER_API_KEY = "YOUR_MESHY_API_KEY"
DEFAULT_SUBMIT_URL = "https://api.meshy.ai/openapi/v2/text-to-3d"


def _env_bool(key: str, default: bool) -> bool:
    v = os.getenv(key)
    if v is None or v == "":
        return default
    return v.lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    api_token: str = os.getenv("API_TOKEN", "change-me")
    meshy_api_key: str = os.getenv("MESHY_API_KEY", "")
    meshy_submit_url: str = os.getenv("MESHY_SUBMIT_URL", DEFAULT_SUBMIT_URL)
    meshy_status_url_base: str = os.getenv("MESHY_STATUS_URL_BASE", DEFAULT_SUBMIT_URL + "/")
    poll_interval_seconds: float = float(os.getenv("POLL_INTERVAL_SECONDS", 5.0))
    max_poll_seconds: float = float(os.getenv("MAX_POLL_SECONDS", 600.0))
    art_style: str = os.getenv("MESHY_ART_STYLE", "realistic")
    should_remesh: bool = _env_bool("MESHY_SHOULD_REMESH", True)
    target_polycount: int = int(os.getenv("MESHY_TARGET_POLYCOUNT", 30000))
    enable_pbr: bool = _env_bool("MESHY_ENABLE_PBR", True)
    cache_dir: str = os.getenv("MODEL_CACHE_DIR", "model_cache")
    max_status_longpoll_seconds: int = int(os.getenv("MAX_STATUS_LONGPOLL_SECONDS", 30))
    max_sessions: int = int(os.getenv("MAX_SESSIONS", 256))
    session_ttl_seconds: float = float(os.getenv("SESSION_TTL_SECONDS", 3600.0))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    def require_api_key(self) -> str:
        key = (self.meshy_api_key or "").strip()
        if not key or key == PLACEHOLDER_API_KEY:
            raise ConfigError("Meshy API key is not set (MESHY_API_KEY)")
        return key

    def status_url(self, task_id: str) -> str:
        return f"{self.meshy_status_url_base}{task_id}"

settings = Settings()
