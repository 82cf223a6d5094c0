import asyncio
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple
from urllib.parse import urljoin, urlparse

from dotenv import load_dotenv
from rich.markup import escape
from rich.table import Table

from checkpoint import (
    CATEGORIES,
    INITIAL_PRODUCTS,
    PRODUCT_DETAILS,
    PRODUCT_FAILURES,
    SUBCATEGORIES,
    CheckpointStore,
)
from extractors import (
    MAX_SUBCATEGORIES_PER_CATEGORY,
    READINESS_TIMEOUT_MS,
    extract_categories,
    extract_product_detail,
    extract_product_summaries,
    extract_subcategories,
)
from normalize import DISPLAY_SIZE_SUFFIX
from records import FailureRecord, ProductSummaryRecord
from session import PageSession, ScrapeError, console

#
# High-level overview
# - Configuration: runtime knobs via environment variables (`Config`)
# - Stage runner: `run_stage` visits link records in order, one page at a time
# - Discovery: categories -> subcategories -> product summaries -> checkpoint
# - Details: resume from the latest summary checkpoint, isolate per-item failures
# - Entrypoints: `python scraper.py [discover|details|all]` or the console scripts

RECYCLE_EVERY = 5


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


@dataclass
class Config:
    base_url: str = "https://www.rigelmedical.com"
    products_path: str = "/gb/products/"
    output_dir: str = "."
    headless: bool = True
    user_agent: str = ""
    proxy_url: str = ""
    nav_timeout_ms: int = 60000
    readiness_timeout_ms: int = READINESS_TIMEOUT_MS
    max_ops_before_recycle: int = RECYCLE_EVERY
    max_subcategories_per_category: int = MAX_SUBCATEGORIES_PER_CATEGORY
    display_size_suffix: str = DISPLAY_SIZE_SUFFIX
    jitter_min_ms: int = 0
    jitter_max_ms: int = 0

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            base_url=os.getenv("RIGEL_BASE_URL", cls.base_url),
            products_path=os.getenv("RIGEL_PRODUCTS_PATH", cls.products_path),
            output_dir=os.getenv("OUTPUT_DIR", cls.output_dir),
            headless=_env_bool("HEADLESS", cls.headless),
            user_agent=os.getenv("USER_AGENT", cls.user_agent),
            proxy_url=os.getenv("PROXY_URL", cls.proxy_url),
            nav_timeout_ms=int(os.getenv("NAV_TIMEOUT_MS", str(cls.nav_timeout_ms))),
            readiness_timeout_ms=int(os.getenv("READINESS_TIMEOUT_MS", str(cls.readiness_timeout_ms))),
            max_ops_before_recycle=int(os.getenv("RECYCLE_EVERY", str(cls.max_ops_before_recycle))),
            max_subcategories_per_category=int(
                os.getenv("MAX_SUBCATEGORIES", str(cls.max_subcategories_per_category))
            ),
            display_size_suffix=os.getenv("DISPLAY_SIZE_SUFFIX", cls.display_size_suffix),
            jitter_min_ms=int(os.getenv("REQUEST_JITTER_MS_MIN", str(cls.jitter_min_ms))),
            jitter_max_ms=int(os.getenv("REQUEST_JITTER_MS_MAX", str(cls.jitter_max_ms))),
        )

    @property
    def origin(self) -> str:
        parsed = urlparse(self.base_url)
        return f"{parsed.scheme}://{parsed.netloc}"

    @property
    def products_url(self) -> str:
        return urljoin(self.origin, self.products_path)


def open_session(cfg: Config) -> PageSession:
    return PageSession(
        headless=cfg.headless,
        user_agent=cfg.user_agent,
        proxy_url=cfg.proxy_url,
        nav_timeout_ms=cfg.nav_timeout_ms,
        max_ops_before_recycle=cfg.max_ops_before_recycle,
        jitter_min_ms=cfg.jitter_min_ms,
        jitter_max_ms=cfg.jitter_max_ms,
    )


SessionFactory = Callable[[Config], PageSession]
Extract = Callable[[PageSession, Any], Awaitable[Sequence[Any]]]


def today_stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


class StageAbortedError(ScrapeError):
    """A discovery item failed with an error that does not name its page."""

    def __init__(self, url: str, cause: Exception) -> None:
        super().__init__(f"Scraping {url} failed: {cause}")
        self.url = url


@dataclass
class StageResult:
    records: List[Any] = field(default_factory=list)
    failures: List[FailureRecord] = field(default_factory=list)


async def run_stage(
    session: PageSession,
    items: Sequence[Any],
    extract: Extract,
    *,
    isolate_failures: bool = False,
) -> StageResult:
    """Visit each item's link in order and collect what `extract` returns.

    With `isolate_failures` off any error propagates and aborts the stage.
    With it on, a failing item becomes a `FailureRecord` and the loop moves on.
    The session's recycle budget is charged once per item either way.
    """
    result = StageResult()
    total = len(items)
    for i, item in enumerate(items):
        console.log(f"[{i+1}/{total}] Scraping {escape(item.name)} ({item.link})")
        try:
            await session.navigate(item.link)
            produced = await extract(session, item)
        except Exception as e:
            if not isolate_failures:
                if isinstance(e, ScrapeError):
                    raise
                raise StageAbortedError(item.link, e) from e
            console.log(f"[red]Failed to scrape {escape(item.name)} ({item.link}): {escape(str(e))}[/red]")
            result.failures.append(FailureRecord(name=item.name, link=item.link, error_message=str(e)))
        else:
            result.records.extend(produced)
        await session.recycle_if_due()
    return result


def print_summary(rows: List[Tuple[str, int, int, Optional[Path]]]) -> None:
    table = Table(title="Run summary")
    table.add_column("Stage")
    table.add_column("Records", justify="right")
    table.add_column("Failures", justify="right")
    table.add_column("Artifact")
    for stage, records, failures, path in rows:
        table.add_row(stage, str(records), str(failures), str(path) if path else "-")
    console.print(table)


async def discover_catalog(
    cfg: Config,
    store: Optional[CheckpointStore] = None,
    session_factory: Optional[SessionFactory] = None,
) -> Path:
    """Walk categories, subcategories and listings, then checkpoint the summaries.

    Any navigation or extraction error here is fatal for the run.
    """
    store = store or CheckpointStore(cfg.output_dir)
    session_factory = session_factory or open_session
    async with session_factory(cfg) as session:
        console.log("Scraping categories...")
        await session.navigate(cfg.products_url)
        categories = await extract_categories(session, cfg.origin)
        await session.recycle_if_due()
        categories_path = store.write_stage(CATEGORIES, categories)
        console.log(f"Categories saved to {categories_path}")

        console.log("Scraping subcategories...")
        subcategories = await run_stage(
            session,
            categories,
            partial(extract_subcategories, origin=cfg.origin, limit=cfg.max_subcategories_per_category),
        )
        subcategories_path = store.write_stage(SUBCATEGORIES, subcategories.records)
        console.log(f"Subcategories saved to {subcategories_path}")

        console.log("Scraping initial product data...")
        summaries = await run_stage(
            session,
            subcategories.records,
            partial(extract_product_summaries, origin=cfg.origin),
        )

    products_path = store.write_stage(INITIAL_PRODUCTS, summaries.records, date_stamp=today_stamp())
    console.log(f"Products saved to {products_path}")
    print_summary([
        ("categories", len(categories), 0, categories_path),
        ("subcategories", len(subcategories.records), 0, subcategories_path),
        ("products", len(summaries.records), 0, products_path),
    ])
    return products_path


async def scrape_details(
    cfg: Config,
    store: Optional[CheckpointStore] = None,
    session_factory: Optional[SessionFactory] = None,
) -> Tuple[Path, Optional[Path]]:
    """Resume from the latest summary checkpoint and extract every product page.

    Returns the results path and the failure-log path (None when nothing failed).
    Raises `CheckpointMissingError` before any browser is launched.
    """
    store = store or CheckpointStore(cfg.output_dir)
    session_factory = session_factory or open_session
    latest = store.find_latest(INITIAL_PRODUCTS)
    summaries = store.read_stage(latest, ProductSummaryRecord)
    console.log(f"Loaded {len(summaries)} products from {latest}")

    async with session_factory(cfg) as session:
        console.log("Scraping product details...")
        result = await run_stage(
            session,
            summaries,
            partial(
                extract_product_detail,
                origin=cfg.origin,
                readiness_timeout_ms=cfg.readiness_timeout_ms,
                display_suffix=cfg.display_size_suffix,
            ),
            isolate_failures=True,
        )

    stamp = today_stamp()
    results_path = store.write_stage(PRODUCT_DETAILS, result.records, date_stamp=stamp)
    console.log(f"Product details saved to {results_path}")
    failed_path: Optional[Path] = None
    if result.failures:
        failed_path = store.write_stage(PRODUCT_FAILURES, result.failures, date_stamp=stamp)
        console.log(f"Failed product details saved to {failed_path}")
    else:
        console.log("No failed product scrapes.")
    print_summary([("details", len(result.records), len(result.failures), results_path)])
    return results_path, failed_path


def load_env() -> None:
    # Load from .env if present
    load_dotenv()


async def main(argv: Optional[List[str]] = None) -> int:
    """Entrypoint: load configuration and run the requested stage(s)."""
    load_env()
    cfg = Config.from_env()
    args = sys.argv[1:] if argv is None else argv
    stage = args[0] if args else "all"
    if stage not in ("discover", "details", "all"):
        console.log(f"Unknown stage {stage!r}; expected discover, details or all")
        return 2
    if stage in ("discover", "all"):
        await discover_catalog(cfg)
    if stage in ("details", "all"):
        await scrape_details(cfg)
    console.log("Scraping complete!")
    return 0


def cli(argv: Optional[List[str]] = None) -> None:
    try:
        code = asyncio.run(main(argv))
    except KeyboardInterrupt:
        console.log("Interrupted by user")
        code = 130
    except Exception as e:
        console.log(f"Fatal error: {escape(str(e))}")
        code = 1
    sys.exit(code)


def discover_cli() -> None:
    cli(["discover"])


def details_cli() -> None:
    cli(["details"])


if __name__ == "__main__":
    cli()
