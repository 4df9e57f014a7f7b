from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlparse

from .errors import ConfigError

DEFAULT_ENDPOINT = "https://api.capturoo.com"
DEFAULT_ENV_FILE = Path(".env")
CONFIG_DIR_NAME = ".capturoo"
REQUEST_TIMEOUT = 6.0


def default_config_dir() -> Path:
    return Path.home() / CONFIG_DIR_NAME


@dataclass
class AppConfig:
    endpoint: str
    token_filename: str
    config_dir: Path = field(default_factory=default_config_dir)
    debug: bool = False
    request_timeout: float = REQUEST_TIMEOUT

    def trace(self, message: str) -> None:
        if self.debug:
            print(message, file=sys.stderr)


def load_env_file(path: Path) -> Dict[str, str]:
    env: Dict[str, str] = {}
    if not path.exists():
        return env
    for line in path.read_text().splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        env[key.strip()] = value.strip()
    return env


def endpoint_to_filename(endpoint: str) -> str:
    """Turn an endpoint URL into the token file name, e.g. ``localhost_8080``."""
    parsed = urlparse(endpoint)
    if not parsed.scheme or not parsed.hostname:
        raise ConfigError(f"failed to parse endpoint url {endpoint!r}")
    try:
        port = parsed.port
    except ValueError as exc:
        raise ConfigError(f"failed to parse endpoint url {endpoint!r}: {exc}") from exc
    suffix = f"_{port}" if port else ""
    return (parsed.hostname + suffix).replace(".", "_")


def load_config(
    env_path: Path,
    *,
    endpoint: Optional[str] = None,
    debug: bool = False,
    config_dir: Optional[Path] = None,
) -> AppConfig:
    env_file_data = load_env_file(env_path)
    env_lookup = {**env_file_data, **os.environ}

    resolved = (endpoint or env_lookup.get("CAPTUROO_CLI_ENDPOINT") or DEFAULT_ENDPOINT).rstrip("/")
    return AppConfig(
        endpoint=resolved,
        token_filename=endpoint_to_filename(resolved),
        config_dir=config_dir or default_config_dir(),
        debug=debug,
    )
