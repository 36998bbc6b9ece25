"""Main entry point for Saphira.

Command-line front for the collection engine:
  collect / interests  → run collectors and commit to the knowledge store
  search / scrape      → ad-hoc web search with a short-lived cache
  list / history       → browse stored records and past runs
  delete / delete-run / delete-all → remove stored content
"""

import argparse
import logging
import sys
import time
from collections.abc import Callable

from .collection import CollectionService
from .collectors import REGISTRY, BaseCollector
from .config import ApiKeyStore, AppConfig, Settings, load_config
from .errors import SaphiraError
from .interests import SCHEDULE_INTERVAL, InterestCollector
from .search import SearchService
from .store import KnowledgeStore
from .tagger import Tagger

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging to stdout."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def _collector_configs(config: AppConfig, keys: ApiKeyStore) -> dict[str, dict]:
    """Map config sections to collector init kwargs.

    将配置映射到 collector 构造参数。
    """
    src = config.sources
    col = config.collection
    return {
        "arxiv": {
            "enabled": src.arxiv.enabled,
            "kwargs": {"max_results": src.arxiv.max_results},
        },
        "wikipedia": {
            "enabled": src.wikipedia.enabled,
            "kwargs": {
                "language": src.wikipedia.language,
                "max_results": src.wikipedia.max_results,
            },
        },
        "newsapi": {
            "enabled": src.newsapi.enabled,
            "kwargs": {
                "api_key": keys.get_api_key("newsapi"),
                "max_results": src.newsapi.max_results,
                "language": src.newsapi.language,
            },
        },
        "github": {
            "enabled": src.github.enabled,
            "kwargs": {
                "token": keys.get_api_key("github"),
                "max_results": src.github.max_results,
            },
        },
        "duckduckgo": {
            "enabled": src.duckduckgo.enabled,
            "kwargs": {
                "max_results": src.duckduckgo.max_results,
                "timeout": col.web_search_timeout,
                "allowed_sources": src.duckduckgo.allowed_sources,
                "extract_workers": col.extract_workers,
            },
        },
    }


def make_collector_factory(
    config: AppConfig,
    keys: ApiKeyStore,
) -> Callable[..., BaseCollector]:
    """Factory used by the orchestrator: factory(name, **overrides)."""

    def factory(name: str, **overrides) -> BaseCollector:
        cls = REGISTRY.get(name)
        if cls is None:
            raise SaphiraError(f"Unknown source: {name} (not in registry)")
        cfg = _collector_configs(config, keys).get(name, {"kwargs": {}})
        return cls(**{**cfg["kwargs"], **overrides})

    return factory


def _build_collectors(config: AppConfig, keys: ApiKeyStore) -> list[BaseCollector]:
    """Instantiate all enabled collectors from config."""
    collectors: list[BaseCollector] = []
    for name, cfg in _collector_configs(config, keys).items():
        if not cfg["enabled"]:
            logger.info("Collector %s is disabled, skipping", name)
            continue
        try:
            collector = REGISTRY[name](**cfg["kwargs"])
            collectors.append(collector)
            logger.debug("Initialized collector: %s", collector)
        except Exception:
            logger.exception("Failed to initialize collector: %s", name)
    return collectors


class App:
    """Services wired from config, built once per process."""

    def __init__(self, config: AppConfig, settings: Settings) -> None:
        self.config = config
        self.keys = ApiKeyStore(settings, config.storage.api_keys_file)
        self.store = KnowledgeStore(config.storage.data_dir)
        self.tagger = Tagger(max_tags=config.tagger.max_tags)
        self.collection = CollectionService(
            self.store,
            collector_factory=make_collector_factory(config, self.keys),
            processors=[self.tagger],
            fallback_timeout=config.collection.fallback_timeout,
        )
        self.search = SearchService(
            collectors={"duckduckgo": make_collector_factory(config, self.keys)("duckduckgo")},
            cache_ttl=config.search.cache_ttl,
            default_max_results=config.search.default_max_results,
        )


# ── Subcommands / 子命令 ──────────────────────────────────────────────────


def _cmd_collect(app: App, args: argparse.Namespace) -> int:
    sources = args.sources or [
        name for name, cfg in _collector_configs(app.config, app.keys).items() if cfg["enabled"]
    ]
    keywords = args.keywords if args.keywords is not None else app.config.keywords
    records = app.collection.run_collection(
        sources=sources,
        keywords=keywords,
        max_results=args.max_results or app.config.collection.max_results,
        processing_level=args.level or app.config.collection.processing_level,
        save=not args.no_save,
    )
    state = app.collection.get_run_state()
    errors = sum(1 for r in records if r.is_error)
    logger.info(
        "Run %s %s: %d records (%d errors)",
        state.id[:8], state.status, state.items_collected, errors,
    )
    return 0


def _cmd_interests(app: App, args: argparse.Namespace) -> int:
    interests = app.config.interests
    if not interests:
        logger.warning("No interests configured")
        return 0
    collector = InterestCollector(store=None if args.no_save else app.store)
    for c in _build_collectors(app.config, app.keys):
        collector.register_adapter(c)
    collector.register_processor(app.tagger)
    if args.allowed_sources:
        collector.set_allowed_sources(args.allowed_sources)

    records = collector.manual_collection(interests)
    logger.info("Interest collection created %d records", len(records))
    if not args.watch:
        return 0

    # 常驻模式：定时检查到期兴趣，Ctrl-C 退出
    collector.start_scheduled_collection(lambda: interests, interval=args.interval)
    try:
        while collector.scheduled_running:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping scheduled collection")
    finally:
        collector.stop_scheduled_collection()
    return 0


def _print_results(response) -> None:
    origin = "cache" if response.from_cache else "live"
    print(f"{len(response.results)} results for {response.query!r} ({origin})")
    for i, item in enumerate(response.results, 1):
        print(f"{i:>2}. {item.title}")
        print(f"    {item.source_url}")
        if item.summary:
            print(f"    {item.summary[:160]}")


def _cmd_search(app: App, args: argparse.Namespace) -> int:
    response = app.search.search(
        args.engine, args.query, use_cache=not args.no_cache, max_results=args.max_results,
    )
    _print_results(response)
    if args.save and response.results:
        records = app.store.save_items(response.results, args.engine, args.query.split())
        logger.info("Saved %d search results", len(records))
    return 0


def _cmd_scrape(app: App, args: argparse.Namespace) -> int:
    response = app.search.scrape(
        args.query, use_cache=not args.no_cache, max_results=args.max_results or 10,
    )
    _print_results(response)
    if args.save and response.results:
        records = app.store.save_items(response.results, "duckduckgo", args.query.split())
        logger.info("Saved %d scraped results", len(records))
    return 0


def _cmd_list(app: App, args: argparse.Namespace) -> int:
    records = app.store.load_all()
    for record in records[: args.limit]:
        marker = "!" if record.is_error else " "
        print(f"{marker} {record.id}  {record.date:%Y-%m-%d %H:%M}  [{record.source_name}] {record.title}")
    print(f"{len(records)} records")
    return 0


def _cmd_history(app: App, args: argparse.Namespace) -> int:
    for entry in app.store.load_history():
        print(
            f"{entry.id}  {entry.date:%Y-%m-%d %H:%M}  {entry.status:<9} "
            f"{entry.item_count:>4} items  {', '.join(entry.sources)}  {entry.filename}"
        )
    return 0


def _cmd_delete(app: App, args: argparse.Namespace) -> int:
    if not app.store.delete_record(args.id):
        logger.error("Record not found: %s", args.id)
        return 1
    return 0


def _cmd_delete_run(app: App, args: argparse.Namespace) -> int:
    purged = app.store.delete_run(args.id)
    logger.info("Removed %d records of run %s", purged, args.id)
    return 0


def _cmd_delete_all(app: App, args: argparse.Namespace) -> int:
    removed = app.store.delete_all()
    logger.info("Removed %d records", removed)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Saphira - interest-driven knowledge collector")
    parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to config.yaml (default: config.yaml)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("collect", help="Run a collection over sources and keywords")
    p.add_argument("-s", "--sources", nargs="+", choices=sorted(REGISTRY))
    p.add_argument("-k", "--keywords", nargs="*")
    p.add_argument("-n", "--max-results", type=int)
    p.add_argument("-l", "--level", choices=["basic", "enhanced", "full"])
    p.add_argument("--no-save", action="store_true")
    p.set_defaults(func=_cmd_collect)

    p = sub.add_parser("interests", help="Collect for configured interests that are due")
    p.add_argument("--no-save", action="store_true")
    p.add_argument("--watch", action="store_true", help="Keep running and collect interests as they fall due")
    p.add_argument("--interval", type=float, default=SCHEDULE_INTERVAL, help="Seconds between due checks in --watch mode")
    p.add_argument("--allowed-sources", nargs="+", metavar="DOMAIN", help="Restrict web results to these domains")
    p.set_defaults(func=_cmd_interests)

    for name, func in (("search", _cmd_search), ("scrape", _cmd_scrape)):
        p = sub.add_parser(name, help=f"{name.capitalize()} the web")
        p.add_argument("query")
        p.add_argument("-n", "--max-results", type=int)
        p.add_argument("--no-cache", action="store_true")
        p.add_argument("--save", action="store_true", help="Save results to the knowledge store")
        if name == "search":
            p.add_argument("-e", "--engine", default="duckduckgo")
        p.set_defaults(func=func)

    p = sub.add_parser("list", help="List stored records")
    p.add_argument("--limit", type=int, default=50)
    p.set_defaults(func=_cmd_list)

    p = sub.add_parser("history", help="Show collection history")
    p.set_defaults(func=_cmd_history)

    p = sub.add_parser("delete", help="Delete one record")
    p.add_argument("id")
    p.set_defaults(func=_cmd_delete)

    p = sub.add_parser("delete-run", help="Delete a collection run and its records")
    p.add_argument("id")
    p.set_defaults(func=_cmd_delete_run)

    p = sub.add_parser("delete-all", help="Delete every stored record")
    p.set_defaults(func=_cmd_delete_all)
    return parser


def cli(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = _build_parser().parse_args(argv)
    _setup_logging(args.verbose)

    config, settings = load_config(args.config)
    app = App(config, settings)
    try:
        code = args.func(app, args)
    except (SaphiraError, ValueError, IndexError) as e:
        logger.error("%s", e)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    cli()
