from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, model_validator

from .errors import UnknownInstitutionError
from .institutions import get_profile


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            return os.getenv(match.group(1), "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name, "") or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in {"1", "true", "t", "yes", "y", "on"}


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _default_config_from_env() -> dict:
    """
    Env-only config, so a `.env` file is enough for most uses. YAML values override these.
    """
    return {
        "portal": {
            "institution": os.getenv("SIGAA_INSTITUTION", ""),
            "url": os.getenv("SIGAA_URL", ""),
            "username": os.getenv("SIGAA_USERNAME", ""),
            "password": os.getenv("SIGAA_PASSWORD", ""),
        },
        "http": {
            "timeout_seconds": os.getenv("SIGAA_TIMEOUT_SECONDS", "30"),
            "mobile": _env_bool("SIGAA_MOBILE", default=False),
            "cache_ttl_seconds": os.getenv("SIGAA_CACHE_TTL_SECONDS", "300"),
            "form_encoding": os.getenv("SIGAA_FORM_ENCODING", "iso-8859-1"),
        },
        "download": {
            "directory": os.getenv("SIGAA_DOWNLOAD_DIR", "data/downloads"),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", "data/sigaa.log"),
        },
    }


class PortalConfig(BaseModel):
    """
    Which SIGAA portal to talk to, and as whom.

    `url` defaults to the institution's public portal; set it for mirrors or test instances.
    """

    institution: str
    url: str = ""
    username: str
    password: str = Field(repr=False)

    @model_validator(mode="after")
    def _fill_defaults_and_validate(self) -> "PortalConfig":
        institution = (self.institution or "").strip().upper()
        if not institution:
            raise ValueError("portal.institution is required (one of IFSC, UFPB, UNB, UNILAB)")
        try:
            profile = get_profile(institution)
        except UnknownInstitutionError as e:
            raise ValueError(str(e)) from None

        url = (self.url or "").strip() or profile.default_url
        url = url.rstrip("/")
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"portal.url must be a full URL like '{profile.default_url}'")

        self.institution = profile.institution.value
        self.url = url
        return self


class HttpConfig(BaseModel):
    timeout_seconds: float = 30.0
    # Mobile user agent; SIGAA serves its lighter mobile pages to it.
    mobile: bool = False
    # 0 disables the page cache.
    cache_ttl_seconds: float = 300.0
    form_encoding: str = "iso-8859-1"

    @model_validator(mode="after")
    def _validate(self) -> "HttpConfig":
        if self.timeout_seconds <= 0:
            raise ValueError("http.timeout_seconds must be positive")
        if self.cache_ttl_seconds < 0:
            raise ValueError("http.cache_ttl_seconds must not be negative")
        try:
            "".encode(self.form_encoding)
        except LookupError:
            raise ValueError(f"http.form_encoding is not a known codec: {self.form_encoding!r}") from None
        return self


class DownloadConfig(BaseModel):
    directory: str = "data/downloads"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = "data/sigaa.log"


class AppConfig(BaseModel):
    portal: PortalConfig
    http: HttpConfig = HttpConfig()
    download: DownloadConfig = DownloadConfig()
    logging: LoggingConfig = LoggingConfig()


def load_config(path: Union[str, Path]) -> AppConfig:
    p = Path(path)
    raw: dict = {}
    if p.exists():
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)
