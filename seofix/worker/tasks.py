"""
Worker tasks: single-shot and iterative fix runs.

The engine is built once per worker process from ``settings.ENGINE_FACTORY``,
an import path (``package.module:callable``) to a sync or async callable
returning a ``RemediationEngine``.
"""

import importlib
import inspect
from time import perf_counter

from taskiq import Context, TaskiqDepends, TaskiqEvents, TaskiqState

from seofix.core.config import settings
from seofix.core.log import configure_logging, logger
from seofix.orchestration.engine import RemediationEngine
from seofix.worker.broker import broker

__all__ = ("fix_website", "fix_website_iteratively", "load_engine")


async def load_engine(factory_path: str | None = None) -> RemediationEngine:
    factory_path = factory_path or settings.ENGINE_FACTORY
    if not factory_path:
        raise RuntimeError("SEOFIX_ENGINE_FACTORY is not set")

    module_name, _, attr = factory_path.partition(":")
    if not attr:
        raise RuntimeError(f"Invalid engine factory path '{factory_path}', expected 'module:callable'")

    factory = getattr(importlib.import_module(module_name), attr)
    engine = factory()
    if inspect.isawaitable(engine):
        engine = await engine
    if not isinstance(engine, RemediationEngine):
        raise RuntimeError(f"Engine factory '{factory_path}' returned {type(engine).__name__}")
    return engine


@broker.on_event(TaskiqEvents.WORKER_STARTUP)
async def startup(state: TaskiqState) -> None:
    configure_logging()
    state.engine = await load_engine()
    logger.info(f"Worker ready with engine from {settings.ENGINE_FACTORY}")


@broker.task(task_name="fix_website")
async def fix_website(
    website_id: str,
    user_id: str,
    options: dict | None = None,
    context: Context = TaskiqDepends(),
) -> dict:
    """Run ``RemediationEngine.run_once``; options are passed through as keyword arguments."""
    engine: RemediationEngine = context.state.engine
    options = options or {}
    logger.info(f"Website {website_id}: fix task started (dry run: {options.get('dry_run', True)})")

    t0 = perf_counter()
    result = await engine.run_once(website_id, user_id, **options)
    logger.info(
        f"Website {website_id}: fix task finished in {perf_counter() - t0:.1f}s — "
        f"success={result.success}, {result.stats.fixes_successful}/{result.stats.fixes_attempted} fixes"
    )
    return result.model_dump(mode="json")


@broker.task(task_name="fix_website_iteratively")
async def fix_website_iteratively(
    website_id: str,
    user_id: str,
    options: dict | None = None,
    context: Context = TaskiqDepends(),
) -> dict:
    """Run ``RemediationEngine.run_iteratively``; options are passed through as keyword arguments."""
    engine: RemediationEngine = context.state.engine
    options = options or {}
    logger.info(f"Website {website_id}: iterative fix task started")

    t0 = perf_counter()
    result = await engine.run_iteratively(website_id, user_id, **options)
    logger.info(
        f"Website {website_id}: iterative fix task finished in {perf_counter() - t0:.1f}s — "
        f"stop reason {result.stop_reason}, score {result.initial_score:.1f} → {result.final_score:.1f}"
    )
    return result.model_dump(mode="json")
