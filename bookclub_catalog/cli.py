# bookclub_catalog/cli.py
from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict
from enum import Enum
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler

from bookclub_catalog.config import CatalogConfig, load_dotenv
from bookclub_catalog.core.errors import CatalogError
from bookclub_catalog.core.models import SearchRequest
from bookclub_catalog.orchestrator import build_orchestrator
from bookclub_catalog.persistence import InMemoryBookRepository

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _jsonable(obj):
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: _jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_jsonable(v) for v in obj]
    return obj


def _dump(payload) -> None:
    print(json.dumps(_jsonable(payload), ensure_ascii=False, indent=2))


def main(argv: Optional[List[str]] = None) -> int:
    logger = logging.getLogger(__name__)
    ap = argparse.ArgumentParser(
        prog="bookclub_catalog",
        description="Book catalog search with read-through caching and next-page prefetch",
    )
    ap.add_argument("--query", required=True, help="Search text sent to the catalog")
    ap.add_argument("--page", type=int, default=1, help="First page to fetch (1-based)")
    ap.add_argument("--pages", type=int, default=1, help="Walk this many pages sequentially")
    ap.add_argument("--page-size", type=int, default=None, help="Items per page (default from config)")
    ap.add_argument("--wait-prefetch", type=float, default=5.0, help="Seconds to wait for prefetch between pages")
    ap.add_argument("--detail", default=None, help="ISBN to show in full after searching")
    ap.add_argument("--settings", default=None, help="YAML settings file (overridden by environment)")
    ap.add_argument("--log-level", default="info", help="Log level: debug, info, warning, error")

    args = ap.parse_args(argv)

    level = LOG_LEVELS.get(args.log_level.lower(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
    )

    used = load_dotenv(".env")
    if used:
        logger.info("loaded .env: %s", used)
    else:
        logger.debug(".env not found via search paths; relying on existing environment variables")

    cfg = CatalogConfig.from_env(args.settings)
    if args.page_size is not None:
        cfg.page_size = args.page_size
    cfg.validate()

    exit_code = 0
    with build_orchestrator(cfg, InMemoryBookRepository()) as orch:
        try:
            request = SearchRequest(args.query, page=args.page, page_size=cfg.page_size)
            for _ in range(max(1, args.pages)):
                warm = orch.cache.peek_page(request) is not None
                books = orch.search(request)
                _dump({"page": request.page, "cache_hit": warm, "books": [asdict(b) for b in books]})
                if not orch.prefetch.wait_idle(timeout=args.wait_prefetch):
                    logger.warning("prefetch still running after %ss", args.wait_prefetch)
                request = request.next_page()

            if args.detail:
                _dump({"detail": asdict(orch.book_detail(args.detail))})
        except ValueError as e:
            raise SystemExit(str(e)) from e
        except CatalogError as e:
            logger.error("%s (%s)", e.public_message, e)
            exit_code = 2
        _dump({"stats": orch.cache.stats_tracker.snapshot_dict(), "sizes": orch.cache.sizes()})
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
