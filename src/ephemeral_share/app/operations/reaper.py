"""Expired-share reaper.

Periodically lists shares whose expiry has passed and purges each one
through the engine's purge path, so a sweep never races a concurrent
access to the same share and never deletes a blob twice.

Usage::

    reaper = ShareReaper(engine, interval_seconds=300)
    reaper.start()           # background asyncio task
    ...
    await reaper.stop()

    report = await reaper.run_once(now=datetime.now(timezone.utc))

One-off sweep against the configured backends::

    python -m ephemeral_share.app.operations.reaper --once
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime

from ..observability.logging import get_logger
from ..observability.metrics import REAPER_SWEEPS_TOTAL
from ..sharing.audit import redact_share_id
from ..sharing.engine import ShareLifecycleEngine
from ..sharing.errors import InfrastructureError

logger = get_logger(__name__)

DEFAULT_REAPER_INTERVAL_SECONDS = 300.0


@dataclass(frozen=True, slots=True)
class ReapFailure:
    """A share the sweep could not purge."""

    share_id: str
    operation: str


@dataclass(frozen=True, slots=True)
class ReapReport:
    """Result of one reaper sweep.

    Attributes:
        purged: Ids removed by this sweep.
        already_gone: Expired ids another caller removed first.
        failures: Ids whose purge failed (retried on the next sweep).
        scanned: Number of expired records listed.
        sweep_ts: Timestamp the sweep ran with.
    """

    purged: tuple[str, ...]
    already_gone: tuple[str, ...]
    failures: tuple[ReapFailure, ...]
    scanned: int
    sweep_ts: datetime

    @property
    def purged_count(self) -> int:
        return len(self.purged)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    def summary(self) -> dict:
        return {
            "scanned": self.scanned,
            "purged": self.purged_count,
            "already_gone": len(self.already_gone),
            "failures": self.failure_count,
            "sweep_ts": self.sweep_ts.isoformat(),
        }


class ShareReaper:
    """Background sweep that purges expired shares.

    Args:
        engine: Lifecycle engine whose purge path is used.
        interval_seconds: Delay between sweeps.
    """

    def __init__(
        self,
        engine: ShareLifecycleEngine,
        *,
        interval_seconds: float = DEFAULT_REAPER_INTERVAL_SECONDS,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._engine = engine
        self._interval = float(interval_seconds)
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Spawn the sweep loop. Calling start on a running reaper is a no-op."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="share-reaper")
        logger.info("reaper_started", interval_seconds=self._interval)

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("reaper_stopped")

    async def run_once(self, now: datetime | None = None) -> ReapReport:
        """Run one sweep.

        Raises:
            InfrastructureError: Listing expired shares failed.
        """
        now = now or self._engine.now()
        try:
            expired = await self._engine.list_expired(now)
        except InfrastructureError:
            REAPER_SWEEPS_TOTAL.labels(result="error").inc()
            logger.error("reaper_list_failed")
            raise

        purged: list[str] = []
        gone: list[str] = []
        failures: list[ReapFailure] = []

        for record in expired:
            try:
                removed = await self._engine.purge_if_expired(record.id, now)
            except InfrastructureError as e:
                failures.append(ReapFailure(share_id=record.id, operation=e.operation))
                logger.error(
                    "reaper_purge_failed",
                    share=redact_share_id(record.id),
                    operation=e.operation,
                )
                continue
            if removed:
                purged.append(record.id)
            else:
                gone.append(record.id)

        report = ReapReport(
            purged=tuple(purged),
            already_gone=tuple(gone),
            failures=tuple(failures),
            scanned=len(expired),
            sweep_ts=now,
        )
        REAPER_SWEEPS_TOTAL.labels(result="partial" if failures else "ok").inc()
        if expired:
            logger.info("reaper_sweep_complete", **report.summary())
        return report

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except InfrastructureError:
                # Logged by run_once; the next tick retries.
                pass
            except Exception as e:
                REAPER_SWEEPS_TOTAL.labels(result="error").inc()
                logger.error(
                    "reaper_sweep_failed",
                    error_type=type(e).__name__,
                    error=str(e)[:200],
                )
            await asyncio.sleep(self._interval)


async def _main() -> None:
    """CLI entry point."""
    import argparse

    from ..main import build_engine
    from ..observability.logging import configure_logging
    from ..settings import ShareServiceSettings

    parser = argparse.ArgumentParser(description="Purge expired shares")
    parser.add_argument(
        "--once", action="store_true", help="Run a single sweep and exit",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between sweeps (default: REAPER_INTERVAL_SECONDS)",
    )
    args = parser.parse_args()

    configure_logging()
    settings = ShareServiceSettings.from_env()
    errors = settings.validate()
    if errors:
        print("Error: invalid settings:\n" + "\n".join(f"  - {e}" for e in errors))
        raise SystemExit(1)

    engine = build_engine(settings)
    reaper = ShareReaper(
        engine,
        interval_seconds=args.interval or settings.reaper_interval_seconds,
    )
    try:
        if args.once:
            report = await reaper.run_once()
            summary = report.summary()
            print(
                f"Scanned: {summary['scanned']}, Purged: {summary['purged']}, "
                f"Failures: {summary['failures']}"
            )
            return
        reaper.start()
        await asyncio.Event().wait()
    finally:
        await reaper.stop()
        await engine.aclose()


if __name__ == "__main__":
    asyncio.run(_main())
