import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

ALGORITHM = "HS256"
MIN_SECRET_BYTES = 32  # HS256 key-size floor
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7  # 7 days
HISTORY_LIMIT = 200


class ConfigError(RuntimeError):
    """Raised when the server configuration cannot be used to serve traffic."""


def _int_setting(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    jwt_secret: str
    access_token_expire_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    history_limit: int = HISTORY_LIMIT

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        environ = os.environ if environ is None else environ
        secret = environ.get("JWT_SECRET")
        if not secret:
            raise ConfigError("JWT_SECRET is not set")
        origins = [o.strip() for o in environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]
        return cls(
            jwt_secret=secret,
            access_token_expire_minutes=_int_setting(
                environ, "ACCESS_TOKEN_EXPIRE_MINUTES", ACCESS_TOKEN_EXPIRE_MINUTES
            ),
            cors_origins=origins or ["*"],
            history_limit=_int_setting(environ, "LOBBY_HISTORY_LIMIT", HISTORY_LIMIT),
        )
