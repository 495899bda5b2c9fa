"""
Server settings, read from the environment.

A ``.env`` file at the project root (two levels above this package) is
loaded first so that REPLICATE_API_TOKEN and UPLOADCARE_PUBLIC_KEY are
available without a manual ``export``.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

_env_path = os.path.abspath(os.path.join(os.path.dirname(__file__), "../..", ".env"))
load_dotenv(_env_path)


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    replicate_api_token: Optional[str] = None
    uploadcare_public_key: Optional[str] = None
    uploadcare_secret_key: Optional[str] = None
    # When set, generation goes through this remote proxy instead of calling
    # the provider in-process.
    api_url: Optional[str] = None
    state_path: Optional[str] = None
    state_version: str = "1"
    seed_demo: bool = True
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3000
    placeholder_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        return cls(
            replicate_api_token=env.get("REPLICATE_API_TOKEN") or None,
            uploadcare_public_key=env.get("UPLOADCARE_PUBLIC_KEY") or None,
            uploadcare_secret_key=env.get("UPLOADCARE_SECRET_KEY") or None,
            api_url=env.get("IMAGECANVAS_API_URL") or None,
            state_path=env.get("IMAGECANVAS_STATE_PATH") or None,
            state_version=env.get("IMAGECANVAS_STATE_VERSION", "1"),
            seed_demo=_flag(env.get("IMAGECANVAS_SEED_DEMO"), True),
            log_level=env.get("IMAGECANVAS_LOG_LEVEL", "INFO").upper(),
            host=env.get("HOST", "0.0.0.0"),
            port=int(env.get("PORT", "3000")),
            placeholder_url=env.get("IMAGECANVAS_PLACEHOLDER_URL") or None,
        )


settings = Settings.from_env()
