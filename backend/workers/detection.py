from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

from backend.core.errors import MissingJobIdError
from backend.core.schema import TierResult
from backend.domain import DetectionJob, DetectionRequest, ReportTask
from backend.infrastructure import DetectionJobRepository, InMemoryDetectionJobRepository
from backend.tiers.base import ResolutionTier, TierContext, merge_results, terminalize
from backend.tiers.fallback_tier import FallbackTier
from backend.tiers.rule_tier import RuleTier

logger = logging.getLogger(__name__)


class DetectionOrchestrator:
    """Advances detection jobs one report per tick through the resolution tiers.

    Every job gets its own asyncio task that sleeps ``tick_interval`` seconds,
    runs one :meth:`step` and repeats until the job is terminal.  All job
    mutation happens on the event loop inside :meth:`step`, after the tier
    calls have returned, so :meth:`status` never observes a half-applied
    report.
    """

    def __init__(
        self,
        repository: DetectionJobRepository | None = None,
        *,
        rule_tier: ResolutionTier | None = None,
        fallback_tier: ResolutionTier | None = None,
        tick_interval: float = 0.5,
        tier_timeout: float | None = 30.0,
    ) -> None:
        self._repository = repository or InMemoryDetectionJobRepository()
        self._rule_tier = rule_tier or RuleTier()
        self._fallback_tier = fallback_tier or FallbackTier()
        self._tick_interval = tick_interval
        self._tier_timeout = tier_timeout
        self._loops: dict[str, asyncio.Task[None]] = {}
        self._stepping: set[str] = set()

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def start(
        self,
        job_id: str,
        report_keys: Iterable[str] = (),
        request: DetectionRequest | None = None,
    ) -> dict[str, Any]:
        """Seed ``job_id`` if needed and begin ticking; safe to call repeatedly."""

        if not job_id:
            raise MissingJobIdError("start requires a job id")

        job = self._repository.get(job_id)
        if job is None:
            job = self._repository.add(DetectionJob.seed(job_id, report_keys, request or DetectionRequest()))
            logger.info("seeded detection job %s with %d report(s)", job_id, job.total)
        else:
            logger.info("detection job %s already exists (%s)", job_id, job.overall)

        if job.total == 0:
            job.mark_success()
            logger.info("detection job %s has no reports, marked %s", job_id, job.overall)
            return {"jobId": job_id, "started": True, "empty": True}

        if job.is_terminal or self.is_ticking(job_id):
            logger.info("detection job %s already %s, start is a no-op", job_id, job.overall)
            return {"jobId": job_id, "started": True, "already": True}

        self._schedule(job)
        return {"jobId": job_id, "started": True}

    def status(self, job_id: str) -> dict[str, Any] | None:
        job = self._repository.get(job_id)
        if job is None:
            logger.warning("status requested for unknown detection job %s", job_id)
            return None
        snapshot = job.snapshot()
        logger.debug(
            "status %s -> %s %d/%d",
            job_id,
            snapshot["overall"],
            snapshot["progress"]["done"],
            snapshot["progress"]["total"],
        )
        return snapshot

    def jobs(self) -> list[dict[str, Any]]:
        """Snapshots of every known job, oldest first."""

        return [job.snapshot() for job in self._repository.list_jobs()]

    async def step(self, job_id: str) -> None:
        """Process the report under the cursor of ``job_id``."""

        job = self._repository.get(job_id)
        if job is None:
            logger.warning("step requested for unknown detection job %s", job_id)
            return
        if job.is_terminal or job_id in self._stepping:
            return
        if job.cursor >= job.total:
            job.mark_success()
            logger.info("detection job %s completed (no more reports)", job_id)
            return

        task = job.reports[job.cursor]
        logger.info("job %s report %d/%d key=%s", job_id, job.cursor + 1, job.total, task.report_key)

        self._stepping.add(job_id)
        try:
            result = await self._resolve(self._context(job, task.report_key))
            job.complete_current(self._applied(task, result))
        except Exception as exc:
            job.mark_failed(str(exc) or exc.__class__.__name__)
            logger.warning("detection job %s failed on report %s: %s", job_id, task.report_key, job.message, exc_info=True)
            return
        finally:
            self._stepping.discard(job_id)

        applied = job.reports[job.cursor - 1]
        logger.info(
            "  applied fieldsMapped=%s%s attributesMapped=%s progress=%d/%d",
            applied.fields_mapped,
            f"({applied.located_source})" if applied.located_source else "",
            applied.attributes_mapped,
            job.done,
            job.total,
        )
        if job.is_terminal:
            logger.info("detection job %s completed (all reports processed)", job_id)

    def is_ticking(self, job_id: str) -> bool:
        loop_task = self._loops.get(job_id)
        return loop_task is not None and not loop_task.done()

    async def wait(self, job_id: str) -> None:
        """Block until the loop of ``job_id`` has finished, if one is running."""

        loop_task = self._loops.get(job_id)
        if loop_task is not None:
            await asyncio.gather(loop_task, return_exceptions=True)

    def stop(self, job_id: str) -> bool:
        """Tear down the loop of an abandoned job; its state is kept."""

        loop_task = self._loops.pop(job_id, None)
        if loop_task is None or loop_task.done():
            return False
        loop_task.cancel()
        logger.info("stopped detection loop for job %s", job_id)
        return True

    def discard(self, job_id: str) -> bool:
        self.stop(job_id)
        return self._repository.discard(job_id) is not None

    async def shutdown(self) -> None:
        loops = list(self._loops.values())
        self._loops.clear()
        for loop_task in loops:
            loop_task.cancel()
        if loops:
            await asyncio.gather(*loops, return_exceptions=True)

    def reset(self) -> None:
        for loop_task in self._loops.values():
            loop_task.cancel()
        self._loops.clear()
        self._stepping.clear()
        self._repository.reset()

    # ------------------------------------------------------------------
    # scheduling
    # ------------------------------------------------------------------
    def _schedule(self, job: DetectionJob) -> None:
        loop = asyncio.get_running_loop()
        self._loops[job.job_id] = loop.create_task(self._run(job.job_id), name=f"detection-{job.job_id}")
        logger.info("detection job %s started ticking (interval=%ss)", job.job_id, self._tick_interval)

    async def _run(self, job_id: str) -> None:
        try:
            while True:
                await asyncio.sleep(self._tick_interval)
                job = self._repository.get(job_id)
                if job is None or job.is_terminal:
                    return
                await self.step(job_id)
                if job.is_terminal:
                    return
        finally:
            if self._loops.get(job_id) is asyncio.current_task():
                del self._loops[job_id]

    # ------------------------------------------------------------------
    # tier pipeline
    # ------------------------------------------------------------------
    @staticmethod
    def _context(job: DetectionJob, report_key: str) -> TierContext:
        request = job.request
        return TierContext(
            job_id=job.job_id,
            report_key=report_key,
            files=request.files,
            dataset=request.dataset,
            engagement_id=request.engagement_id,
            admin_id=request.admin_id,
            routine_codes=request.routine_codes,
        )

    async def _call_tier(self, tier: ResolutionTier, context: TierContext) -> TierResult:
        resolving = asyncio.ensure_future(tier.resolve(context))
        try:
            done, _ = await asyncio.wait({resolving}, timeout=self._tier_timeout)
        except asyncio.CancelledError:
            resolving.cancel()
            raise

        if not done:
            resolving.cancel()
            await asyncio.gather(resolving, return_exceptions=True)
            logger.warning(
                "%s tier timed out after %ss on job %s report %s",
                tier.source,
                self._tier_timeout,
                context.job_id,
                context.report_key,
            )
            return TierResult(message=f"{tier.source} tier timed out")

        # errors raised by the tier itself, TimeoutError included, propagate here
        result = resolving.result()
        if not isinstance(result, TierResult):
            raise TypeError(f"{tier.source} tier returned {type(result).__name__}, expected TierResult")
        logger.debug("  %s tier -> %s", tier.source, result.compact())
        return result

    async def _resolve(self, context: TierContext) -> TierResult:
        primary = await self._call_tier(self._rule_tier, context)
        if primary.conclusive:
            return terminalize(primary)
        secondary = await self._call_tier(self._fallback_tier, context)
        return terminalize(merge_results(primary, secondary))

    @staticmethod
    def _applied(task: ReportTask, result: TierResult) -> ReportTask:
        return ReportTask(
            report_key=task.report_key,
            fields_mapped=result.fields_mapped,
            attributes_mapped=result.attributes_mapped,
            located_source=result.located_source,
            mapped_count=result.mapped_count,
            total_fields=result.total_fields,
            message=result.message,
        )
