"""Configuration loading and saving.

Config file location: ~/.config/readmyfeed/config.toml

Schema:
    [auth]
    session = "..."  # base64-encoded cookie string

    [fetch]
    count = 20
    max_pages = 1
    delay = 0.0

    [api]
    query_id = "..."  # GraphQL query ID for HomeLatestTimeline

    [speech]
    rate = 180  # words per minute
"""

import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

import tomli_w

from .errors import CookieReadFailed

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "readmyfeed"
CONFIG_FILE = CONFIG_DIR / "config.toml"


@dataclass
class AppConfig:
    session: str | None = None
    fetch_count: int = 20
    max_pages: int = 1
    fetch_delay: float = 0.0
    query_id: str | None = None
    speech_rate: int | None = None


def load_config(config_path: Path = CONFIG_FILE) -> AppConfig:
    """Load config from TOML file."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    auth_data = data.get("auth", {})
    fetch_data = data.get("fetch", {})
    api_data = data.get("api", {})
    speech_data = data.get("speech", {})

    rate = speech_data.get("rate")
    return AppConfig(
        session=auth_data.get("session") or None,
        fetch_count=int(fetch_data.get("count", 20)),
        max_pages=int(fetch_data.get("max_pages", 1)),
        fetch_delay=float(fetch_data.get("delay", 0.0)),
        query_id=api_data.get("query_id"),
        speech_rate=int(rate) if rate is not None else None,
    )


def save_config(config: AppConfig, config_path: Path = CONFIG_FILE) -> None:
    """Write config to TOML file with restricted permissions."""
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data: dict = {
        "fetch": {
            "count": config.fetch_count,
            "max_pages": config.max_pages,
            "delay": config.fetch_delay,
        },
    }
    if config.session:
        data["auth"] = {"session": config.session}
    if config.query_id:
        data["api"] = {"query_id": config.query_id}
    if config.speech_rate is not None:
        data["speech"] = {"rate": config.speech_rate}

    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)

    # Restrict permissions: file contains the session token
    os.chmod(config_path, 0o600)


def config_exists(config_path: Path = CONFIG_FILE) -> bool:
    """Check if config file exists."""
    return config_path.exists()


class ConfigSessionStore:
    """Keeps the encoded session token in the ``[auth]`` table of the config."""

    def __init__(self, config_path: Path = CONFIG_FILE):
        self.config_path = config_path

    def _load(self) -> AppConfig:
        if not config_exists(self.config_path):
            return AppConfig()
        return load_config(self.config_path)

    async def get(self) -> str | None:
        try:
            session = self._load().session
        except (OSError, tomllib.TOMLDecodeError, ValueError) as e:
            logger.error("Failed to load X session from %s: %s", self.config_path, e)
            raise CookieReadFailed(
                "Failed to read stored session", {"cause": str(e)}
            ) from e
        logger.info("Loaded X session from config (found=%s)", bool(session))
        return session

    async def set(self, encoded: str) -> None:
        config = self._load()
        config.session = encoded
        save_config(config, self.config_path)
        logger.info("Stored X session in config (length=%d)", len(encoded))

    async def clear(self) -> None:
        if not config_exists(self.config_path):
            return
        config = self._load()
        config.session = None
        save_config(config, self.config_path)
        logger.info("Cleared X session from config")
