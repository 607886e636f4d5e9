from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from bookclub_catalog.core.cache_store import (
    DEFAULT_DETAIL_MAX_ENTRIES,
    DEFAULT_DETAIL_TTL_S,
    DEFAULT_PAGE_MAX_ENTRIES,
    DEFAULT_PAGE_TTL_S,
)
from bookclub_catalog.core.prefetch import DEFAULT_PREFETCH_WORKERS
from bookclub_catalog.integrations.http_client import DEFAULT_API_KEY_PARAM, DEFAULT_ENDPOINT

logger = logging.getLogger(__name__)


def _strip_inline_comment(val: str) -> str:
    in_single = False
    in_double = False
    for i, ch in enumerate(val):
        if ch == "'" and not in_double:
            in_single = not in_single
            continue
        if ch == '"' and not in_single:
            in_double = not in_double
            continue
        if ch == "#" and not in_single and not in_double:
            return val[:i].rstrip()
    return val.rstrip()


def _parse_env_file(path: Path) -> None:
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            if line.startswith("export "):
                line = line[len("export ") :].lstrip()
            k, v = line.split("=", 1)
            k = k.strip()
            v = _strip_inline_comment(v.strip())
            if len(v) >= 2 and v[0] == v[-1] and v[0] in ("'", '"'):
                v = v[1:-1]
            if k and k not in os.environ:
                os.environ[k] = v
    except OSError as e:
        logger.warning("could not read env file | path=%s | err=%r", path, e)


def load_dotenv(path: str = ".env") -> Optional[str]:
    """
    Loads environment variables from a .env file. Existing variables win.

    Search order:
    1) ENV_PATH (if set)
    2) explicit `path` as provided (relative to CWD or absolute)
    3) project root (parent of the bookclub_catalog package directory)
    4) current working directory

    Returns the resolved .env path used, or None if not found.
    """
    override = os.getenv("ENV_PATH")
    candidates: List[Path] = []
    if override:
        candidates.append(Path(override).expanduser())

    p = Path(path).expanduser()
    candidates.append(p if p.is_absolute() else (Path.cwd() / p))

    pkg_dir = Path(__file__).resolve().parent
    candidates.append(pkg_dir.parent / ".env")

    candidates.append(Path.cwd() / ".env")

    seen = set()
    for c in candidates:
        c = c.resolve()
        if str(c) in seen:
            continue
        seen.add(str(c))
        if c.exists() and c.is_file():
            _parse_env_file(c)
            return str(c)

    return None


def _read_settings_file(path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except FileNotFoundError as e:
        raise SystemExit(f"Settings file not found: {path}") from e
    except Exception as e:
        raise SystemExit(f"Failed to read settings file: {path} ({e})") from e
    if not isinstance(data, dict):
        raise SystemExit(f"Settings file must be a mapping: {path}")
    logger.info("Loaded settings file: %s", path)
    return data


# env var -> CatalogConfig field
ENV_FIELDS = {
    "CATALOG_ENDPOINT": "endpoint",
    "CATALOG_API_KEY": "api_key",
    "CATALOG_API_KEY_PARAM": "api_key_param",
    "CATALOG_TIMEOUT_S": "timeout_s",
    "CATALOG_PAGE_SIZE": "page_size",
    "CATALOG_RATE_PER_SEC": "rate_per_sec",
    "CATALOG_BURST": "burst",
    "CACHE_PAGE_TTL_S": "page_ttl_s",
    "CACHE_DETAIL_TTL_S": "detail_ttl_s",
    "CACHE_PAGE_MAX_ENTRIES": "page_max_entries",
    "CACHE_DETAIL_MAX_ENTRIES": "detail_max_entries",
    "PREFETCH_WORKERS": "prefetch_workers",
    "GENRE_KEYWORDS_FILE": "genre_keywords_file",
}


@dataclass
class CatalogConfig:
    endpoint: str = DEFAULT_ENDPOINT
    api_key: Optional[str] = None
    api_key_param: str = DEFAULT_API_KEY_PARAM
    timeout_s: float = 5.0
    page_size: int = 10

    rate_per_sec: float = 2.0
    burst: int = 4

    page_ttl_s: float = DEFAULT_PAGE_TTL_S
    detail_ttl_s: float = DEFAULT_DETAIL_TTL_S
    page_max_entries: int = DEFAULT_PAGE_MAX_ENTRIES
    detail_max_entries: int = DEFAULT_DETAIL_MAX_ENTRIES

    prefetch_workers: int = DEFAULT_PREFETCH_WORKERS
    genre_keywords_file: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "CatalogConfig":
        cfg = cls()
        cfg.apply(data)
        return cfg

    def apply(self, data: Dict[str, Any]) -> None:
        known = {f.name for f in fields(self)}
        for key, raw in data.items():
            name = str(key).strip().lower()
            if name not in known:
                logger.warning("Ignoring unknown setting: %s", key)
                continue
            setattr(self, name, _coerce(name, raw, getattr(self, name)))

    @classmethod
    def from_env(cls, settings_path: Optional[str] = None) -> "CatalogConfig":
        """
        Defaults, then the YAML settings file (settings_path or CATALOG_SETTINGS), then
        environment variables.
        """
        cfg = cls()
        settings_path = settings_path or os.getenv("CATALOG_SETTINGS")
        if settings_path:
            cfg.apply(_read_settings_file(Path(settings_path).expanduser()))
        env = {
            field_name: os.environ[var]
            for var, field_name in ENV_FIELDS.items()
            if (os.environ.get(var) or "").strip()
        }
        cfg.apply(env)
        return cfg

    def validate(self) -> None:
        if not (self.endpoint or "").strip():
            raise SystemExit("Missing CATALOG_ENDPOINT (set in .env, settings file or environment).")
        if not self.endpoint.startswith(("http://", "https://")):
            raise SystemExit("CATALOG_ENDPOINT must be an http(s) URL.")
        if self.timeout_s <= 0:
            raise SystemExit("CATALOG_TIMEOUT_S must be positive.")
        if self.page_size < 1:
            raise SystemExit("CATALOG_PAGE_SIZE must be at least 1.")
        if self.page_ttl_s <= 0 or self.detail_ttl_s <= 0:
            raise SystemExit("Cache TTLs must be positive.")
        if self.page_max_entries < 1 or self.detail_max_entries < 1:
            raise SystemExit("Cache capacities must be at least 1.")
        if self.prefetch_workers < 1:
            raise SystemExit("PREFETCH_WORKERS must be at least 1.")


def _coerce(name: str, raw: Any, current: Any) -> Any:
    if name in ("api_key", "genre_keywords_file"):
        val = str(raw or "").strip()
        return val or None
    if raw is None:
        return current
    try:
        if isinstance(current, int):
            return int(raw)
        if isinstance(current, float):
            return float(raw)
    except (TypeError, ValueError) as e:
        raise SystemExit(f"Invalid value for {name}: {raw!r}") from e
    return str(raw).strip()
