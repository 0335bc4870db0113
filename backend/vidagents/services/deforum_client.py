"""Deforum API client for keyframe-driven animation jobs."""

import asyncio
import logging
from typing import Any

from vidagents.errors import BackendJobError, BackendTimeoutError
from vidagents.services.service_client import ServiceClient

logger = logging.getLogger(__name__)

_SUCCEEDED = "SUCCEEDED"
_FAILED_STATUSES = frozenset({"FAILED", "CANCELLED"})


class DeforumClient(ServiceClient):
    """Async client for the Deforum batch API (``/deforum_api``)."""

    service_name = "Deforum"

    async def submit_batch(self, deforum_settings: dict[str, Any]) -> str:
        """Submit a single-job batch and return its job id."""
        logger.info(
            "POST %s/deforum_api/batches frames=%s fps=%s",
            self.host, deforum_settings.get("max_frames"), deforum_settings.get("fps"),
        )
        data = await self._json(
            "POST",
            "/deforum_api/batches",
            json={"deforum_settings": [deforum_settings]},
            idempotent=False,
        )
        job_ids = data.get("job_ids") or []
        if not job_ids:
            raise BackendJobError(f"Deforum batch returned no job ids: {data}")
        logger.info("  batch_id=%s job_id=%s", data.get("batch_id"), job_ids[0])
        return job_ids[0]

    async def get_job(self, job_id: str) -> dict[str, Any]:
        return await self._json("GET", f"/deforum_api/jobs/{job_id}")

    async def wait_for_job(
        self,
        job_id: str,
        timeout_s: float = 900.0,
        poll_interval_s: float = 2.0,
    ) -> dict[str, Any]:
        """Poll a job until it succeeds.

        Raises:
            BackendJobError: The job failed or was cancelled.
            BackendTimeoutError: Not finished within ``timeout_s``.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s

        while True:
            job = await self.get_job(job_id)
            status = str(job.get("status", "")).upper()

            if status == _SUCCEEDED:
                logger.info("Deforum job %s succeeded (outdir=%s)", job_id, job.get("outdir"))
                return job
            if status in _FAILED_STATUSES:
                message = job.get("message") or job.get("error_type") or status.lower()
                raise BackendJobError(f"Deforum job {job_id} {status.lower()}: {message}")

            logger.debug(
                "Deforum job %s: status=%s phase=%s progress=%s",
                job_id, status, job.get("phase"), job.get("phase_progress"),
            )
            if loop.time() + poll_interval_s > deadline:
                raise BackendTimeoutError(
                    f"Deforum job {job_id} timed out after {timeout_s:.0f}s"
                )
            await asyncio.sleep(poll_interval_s)

    def output_url(self, job: dict[str, Any]) -> str:
        """URL of the rendered video, served by the WebUI's file route."""
        outdir = str(job.get("outdir", "")).rstrip("/")
        timestring = job.get("timestring")
        if not outdir or not timestring:
            raise BackendJobError(f"Deforum job {job.get('id')} has no output location")
        return f"{self.host}/file={outdir}/{timestring}.mp4"
