#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Settings for a download run.

Values come from ``config.json`` (``username``, ``password``, ``mangaLink`` and
optionally ``loginUrl``). Environment variables, including a ``.env`` file loaded
through python-dotenv, take precedence over the file.
"""

from __future__ import annotations

import json
import logging
import os
import pathlib
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

LOG = logging.getLogger("slashdl.config")

DEFAULT_LOGIN_URL = "https://v2.slashlib.me/ru/front/auth"
DEFAULT_CONFIG_NAME = "config.json"


class ConfigError(RuntimeError):
    """Raised when credentials or the catalog link are missing or unreadable."""


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class Settings:
    credentials: Credentials
    manga_link: str
    login_url: str = DEFAULT_LOGIN_URL
    headless: bool = True
    output_dir: pathlib.Path = pathlib.Path("downloads")
    chapters_file: pathlib.Path = pathlib.Path("chapters.json")
    log_dir: pathlib.Path = pathlib.Path("logs")


def _resolve_dir(env: Mapping[str, str], env_key: str, default_name: str, base_dir: pathlib.Path) -> pathlib.Path:
    candidate = env.get(env_key, "").strip()
    if candidate:
        path = pathlib.Path(candidate).expanduser()
        if not path.is_absolute():
            path = base_dir / path
        return path
    return base_dir / default_name


def read_config_file(path: pathlib.Path) -> dict:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        LOG.debug("Config file %s not found; relying on environment.", path)
        return {}
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Could not read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object.")
    return data


def load_settings(
    config_path: Optional[pathlib.Path] = None,
    env: Optional[Mapping[str, str]] = None,
    base_dir: Optional[pathlib.Path] = None,
    require_credentials: bool = True,
) -> Settings:
    """Build :class:`Settings` from the config file and the environment.

    ``env`` defaults to ``os.environ`` after loading ``.env``; tests pass a plain dict.
    Offline commands pass ``require_credentials=False`` and only need the paths.
    """
    base_dir = base_dir or pathlib.Path.cwd()
    if env is None:
        env_path = base_dir / ".env"
        if env_path.exists():
            load_dotenv(env_path)
        else:
            load_dotenv()
        env = os.environ

    config_path = config_path or (base_dir / DEFAULT_CONFIG_NAME)
    data = read_config_file(config_path)

    def pick(env_key: str, json_key: str, strip: bool = True) -> str:
        # Credentials are passed through as written; only empty counts as missing.
        for raw in (env.get(env_key), data.get(json_key)):
            if isinstance(raw, str):
                value = raw.strip() if strip else raw
                if value:
                    return value
        return ""

    username = pick("SLASHDL_USERNAME", "username", strip=False)
    password = pick("SLASHDL_PASSWORD", "password", strip=False)
    manga_link = pick("SLASHDL_MANGA_LINK", "mangaLink")
    login_url = pick("SLASHDL_LOGIN_URL", "loginUrl") or DEFAULT_LOGIN_URL

    missing = [
        name
        for name, value in (("username", username), ("password", password), ("mangaLink", manga_link))
        if not value
    ]
    if missing and require_credentials:
        raise ConfigError(f"Missing required settings: {', '.join(missing)}")

    return Settings(
        credentials=Credentials(username=username, password=password),
        manga_link=manga_link,
        login_url=login_url,
        headless=env.get("HEADLESS", "true").strip().lower() != "false",
        output_dir=_resolve_dir(env, "OUTPUT_DIR", "downloads", base_dir),
        chapters_file=_resolve_dir(env, "CHAPTERS_FILE", "chapters.json", base_dir),
        log_dir=_resolve_dir(env, "LOG_DIR", "logs", base_dir),
    )
