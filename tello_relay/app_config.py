from pydantic import BaseModel

from tello_relay.shared.config import config


def _env_str(key: str, default: str) -> str:
    return (config.get(key) or "").strip() or default


def _env_int(key: str, default: int) -> int:
    return int((config.get(key) or "").strip() or default)


def _env_bool(key: str, default: str = "false") -> bool:
    return _env_str(key, default).lower() == "true"


class AppEnvironConfig(BaseModel):
    DEBUG: bool = _env_bool("DEBUG")

    # API server
    API_HOST: str = _env_str("API_HOST", "0.0.0.0")
    API_PORT: int = _env_int("API_PORT", 8000)
    API_WORKERS: int = _env_int("API_WORKERS", 1)

    # Device (Tello) endpoints
    TELLO_IP: str = _env_str("TELLO_IP", "192.168.10.1")
    TELLO_COMMAND_PORT: int = _env_int("TELLO_COMMAND_PORT", 8889)
    # The device pushes raw H.264 to this port on the local host
    TELLO_VIDEO_PORT: int = _env_int("TELLO_VIDEO_PORT", 11111)

    # Local command socket
    LOCAL_COMMAND_PORT: int = _env_int("LOCAL_COMMAND_PORT", 9000)
    HANDSHAKE_DELAY_MS: int = _env_int("HANDSHAKE_DELAY_MS", 500)

    # Relay (ffmpeg) configuration
    VIDEO_INPUT_HOST: str = _env_str("VIDEO_INPUT_HOST", "0.0.0.0")
    RELAY_HTTP_HOST: str = _env_str("RELAY_HTTP_HOST", "127.0.0.1")
    RELAY_HTTP_PORT: int = _env_int("RELAY_HTTP_PORT", 11112)
    FFMPEG_BINARY: str = _env_str("FFMPEG_BINARY", "ffmpeg")
    RELAY_PROBE_SIZE: int = _env_int("RELAY_PROBE_SIZE", 1_000_000)
    RELAY_ANALYZE_DURATION_US: int = _env_int("RELAY_ANALYZE_DURATION_US", 1_000_000)
    # Bounded wait for the first UDP input, in microseconds (ffmpeg udp:// timeout option)
    RELAY_INPUT_TIMEOUT_US: int = _env_int("RELAY_INPUT_TIMEOUT_US", 5_000_000)
    RELAY_STOP_TIMEOUT_SECONDS: float = float(_env_str("RELAY_STOP_TIMEOUT_SECONDS", "5"))


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
