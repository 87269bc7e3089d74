from __future__ import annotations

import asyncio
import logging
import random
from typing import Any

from opentelemetry import trace

from directory_workers.core.config import get_settings
from directory_workers.core.telemetry import (
    configure_worker_logging,
    setup_worker_telemetry,
    shutdown_worker_telemetry,
)
from directory_workers.jobs.refresh_schedule import seconds_until_next_slice
from directory_workers.services.refresh_client import RefreshClient

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


async def run_slice(client: RefreshClient) -> dict[str, Any]:
    with tracer.start_as_current_span("worker.refresh_slice") as span:
        summary = await client.trigger_refresh()
        for key in ("total", "selected", "refreshed", "missing", "failed"):
            if key in summary:
                span.set_attribute(f"refresh.{key}", int(summary[key]))
        logger.info(
            "refresh slice finished total=%s selected=%s refreshed=%s missing=%s failed=%s",
            summary.get("total"),
            summary.get("selected"),
            summary.get("refreshed"),
            summary.get("missing"),
            summary.get("failed"),
        )
        return summary


async def run_worker() -> None:
    settings = get_settings()
    configure_worker_logging()
    telemetry_runtime = setup_worker_telemetry(settings)
    client = RefreshClient(
        base_url=settings.api_base_url,
        api_key=settings.api_key,
        timeout_seconds=settings.request_timeout_seconds,
    )
    if not settings.api_key:
        logger.warning("DIRECTORY_WORKER_API_KEY is not set; refresh requests are sent without credentials")

    wait_first = not settings.run_on_start
    backoff = settings.retry_interval_seconds

    try:
        while True:
            if wait_first:
                delay = seconds_until_next_slice(slices_per_day=settings.slices_per_day)
                logger.info("next refresh slice in %.0fs", delay)
                await asyncio.sleep(delay)
            try:
                await run_slice(client)
                backoff = settings.retry_interval_seconds
                wait_first = True
            except Exception as exc:  # pragma: no cover - scheduler robustness
                jitter = random.uniform(0.0, 0.5)
                sleep_for = min(backoff * (2.0 + jitter), settings.max_backoff_seconds)
                logger.exception("refresh trigger failed: %s; retry in %.1fs", exc, sleep_for)
                await asyncio.sleep(sleep_for)
                backoff = sleep_for
                # Retry the same slice instead of waiting for the next boundary.
                wait_first = False
    finally:
        shutdown_worker_telemetry(telemetry_runtime)


if __name__ == "__main__":
    asyncio.run(run_worker())
