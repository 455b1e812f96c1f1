"""Configuration constants, .env parsing, and relay settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def read_env_file(keys: list[str]) -> dict[str, str]:
    """Parse .env file and return values for requested keys.

    Does NOT load into os.environ; callers decide what to do with values.
    This keeps Telegram session strings and OAuth secrets out of the process
    environment.
    """
    env_file = Path.cwd() / ".env"
    try:
        content = env_file.read_text()
    except OSError:
        return {}

    result: dict[str, str] = {}
    wanted = set(keys)

    for line in content.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        eq_idx = trimmed.find("=")
        if eq_idx == -1:
            continue
        key = trimmed[:eq_idx].strip()
        if key not in wanted:
            continue
        value = trimmed[eq_idx + 1 :].strip()
        if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
            value = value[1:-1]
        if value:
            result[key] = value

    return result


ENV_KEYS = [
    "TELEGRAM_API_ID",
    "TELEGRAM_API_HASH",
    "TELEGRAM_SESSION",
    "SYNX_CHAT_ID",
    "GOOGLE_DRIVE_DEFAULT_PARENT",
    "GOOGLE_OAUTH_CLIENT_ID",
    "GOOGLE_OAUTH_CLIENT_SECRET",
    "GOOGLE_SERVICE_ACCOUNT_FILE",
    "AUTO_DOWNLOAD_DELAY_MINUTES",
]


def env_value(key: str, env_config: dict[str, str] | None = None) -> str | None:
    """os.environ wins over .env; blank values count as unset."""
    value = os.environ.get(key)
    if value is None and env_config is not None:
        value = env_config.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


# Absolute paths
PROJECT_ROOT: Path = Path.cwd()
STORE_DIR: Path = (PROJECT_ROOT / "store").resolve()
DATA_DIR: Path = (PROJECT_ROOT / "data").resolve()
TMP_DIR: Path = (PROJECT_ROOT / "tmp").resolve()
SESSION_FILE: Path = STORE_DIR / "telegram-session.txt"

MAX_FILE_SIZE: int = 100 * 1024 * 1024  # 100 MB, fixed
MESSAGE_WINDOW: int = 50
LIST_TIMEOUT_S: float = 30.0
DOWNLOAD_TIMEOUT_S: float = 5 * 60.0
CONNECT_TIMEOUT_S: float = 30.0
DEFAULT_DOWNLOAD_DELAY_MINUTES: float = 10.0

IPC_POLL_INTERVAL: float = 1.0
GOOGLE_TOKEN_URI: str = "https://oauth2.googleapis.com/token"
DRIVE_SCOPES: list[str] = ["https://www.googleapis.com/auth/drive"]


def load_session_string(env_config: dict[str, str] | None = None, session_file: Path = SESSION_FILE) -> str | None:
    """Telegram StringSession from TELEGRAM_SESSION, else from the session file."""
    session = env_value("TELEGRAM_SESSION", env_config)
    if session:
        return session
    try:
        stored = session_file.read_text().strip()
    except OSError:
        return None
    return stored or None


@dataclass
class RelaySettings:
    """Everything the relay reads from the environment, resolved once."""

    session_string: str | None = None
    chat_id: str | None = None
    default_folder_id: str | None = None
    telegram_api_id: int = 0
    telegram_api_hash: str = ""
    oauth_client_id: str | None = None
    oauth_client_secret: str | None = None
    service_account_file: Path | None = None
    tmp_dir: Path = TMP_DIR
    max_file_size: int = MAX_FILE_SIZE
    message_window: int = MESSAGE_WINDOW
    list_timeout_s: float = LIST_TIMEOUT_S
    download_timeout_s: float = DOWNLOAD_TIMEOUT_S
    connect_timeout_s: float = CONNECT_TIMEOUT_S
    default_delay_minutes: float = DEFAULT_DOWNLOAD_DELAY_MINUTES
    drive_scopes: list[str] = field(default_factory=lambda: list(DRIVE_SCOPES))

    @classmethod
    def from_env(cls) -> RelaySettings:
        env_config = read_env_file(ENV_KEYS)

        api_id = env_value("TELEGRAM_API_ID", env_config) or "0"
        try:
            telegram_api_id = int(api_id)
        except ValueError:
            raise ValueError(f"Invalid TELEGRAM_API_ID: {api_id}")

        delay = env_value("AUTO_DOWNLOAD_DELAY_MINUTES", env_config)
        try:
            default_delay = float(delay) if delay else DEFAULT_DOWNLOAD_DELAY_MINUTES
        except ValueError:
            raise ValueError(f"Invalid AUTO_DOWNLOAD_DELAY_MINUTES: {delay}")

        service_account = env_value("GOOGLE_SERVICE_ACCOUNT_FILE", env_config)

        return cls(
            session_string=load_session_string(env_config),
            chat_id=env_value("SYNX_CHAT_ID", env_config),
            default_folder_id=env_value("GOOGLE_DRIVE_DEFAULT_PARENT", env_config),
            telegram_api_id=telegram_api_id,
            telegram_api_hash=env_value("TELEGRAM_API_HASH", env_config) or "",
            oauth_client_id=env_value("GOOGLE_OAUTH_CLIENT_ID", env_config),
            oauth_client_secret=env_value("GOOGLE_OAUTH_CLIENT_SECRET", env_config),
            service_account_file=Path(service_account).expanduser() if service_account else None,
            default_delay_minutes=default_delay,
        )
