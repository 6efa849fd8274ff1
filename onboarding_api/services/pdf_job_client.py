"""Client-side poller for application-form PDF jobs.

The server never pushes job updates. Callers start a job, then poll the status
endpoint at a fixed interval until the job reaches DONE or ERROR or the
attempts run out. Stopping the loop is the only form of cancellation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from onboarding_api.services.application_pdf_service import PdfJobState

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 2.0
DEFAULT_MAX_ATTEMPTS = 60
STATUS_PATH = "/admin/onboardings/application-pdf/status"


class PdfJobClientError(Exception):
    """Base exception for PDF job polling."""


class PdfJobFailedError(PdfJobClientError):
    """Job finished in ERROR."""

    def __init__(self, message: str, status: "PdfJobStatus"):
        super().__init__(message)
        self.status = status


class PdfJobTimeoutError(PdfJobClientError):
    """Job did not finish within max_attempts polls."""


@dataclass
class PdfJobStatus:
    job_id: str
    state: PdfJobState
    progress_percent: int = 0
    download_url: str | None = None
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (PdfJobState.DONE, PdfJobState.ERROR)

    @classmethod
    def from_payload(cls, job_id: str, payload: dict[str, Any]) -> "PdfJobStatus":
        return cls(
            job_id=job_id,
            state=PdfJobState(payload.get("state", PdfJobState.ERROR.value)),
            progress_percent=int(payload.get("progressPercent") or 0),
            download_url=payload.get("downloadUrl"),
            error_message=payload.get("errorMessage"),
        )


def _unwrap(response: httpx.Response) -> dict[str, Any]:
    response.raise_for_status()
    body = response.json()
    if isinstance(body, dict) and "data" in body:
        return body["data"] or {}
    return body


class ApplicationPdfPoller:
    """
    Start and poll application-form PDF jobs over HTTP.

    Args:
        client: An httpx.AsyncClient pointed at the API (cookies/headers set)
        poll_interval: Seconds between status requests
        max_attempts: Status requests before giving up
        on_update: Called with every status received
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        on_update: Callable[[PdfJobStatus], None] | None = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.client = client
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.on_update = on_update

    async def start(self, onboarding_id: str) -> str:
        """Enqueue a job and return its id."""
        response = await self.client.post(f"/admin/onboardings/{onboarding_id}/application-pdf")
        data = _unwrap(response)
        job_id = data.get("jobId")
        if not job_id:
            raise PdfJobClientError("Server did not return a jobId")
        return str(job_id)

    async def fetch_status(self, job_id: str) -> PdfJobStatus:
        response = await self.client.get(STATUS_PATH, params={"jobId": job_id})
        return PdfJobStatus.from_payload(job_id, _unwrap(response))

    async def wait(self, job_id: str) -> PdfJobStatus:
        """
        Poll until DONE.

        Raises:
            PdfJobFailedError: Job ended in ERROR
            PdfJobTimeoutError: max_attempts polls without a terminal state
        """
        for attempt in range(1, self.max_attempts + 1):
            status = await self.fetch_status(job_id)
            if self.on_update:
                self.on_update(status)

            if status.state == PdfJobState.DONE:
                return status
            if status.state == PdfJobState.ERROR:
                raise PdfJobFailedError(status.error_message or "PDF generation failed", status)

            if attempt < self.max_attempts:
                await asyncio.sleep(self.poll_interval)

        logger.warning("PDF job %s still running after %d polls", job_id, self.max_attempts)
        raise PdfJobTimeoutError(
            f"PDF job {job_id} did not finish after {self.max_attempts} attempts"
        )

    async def generate(self, onboarding_id: str) -> PdfJobStatus:
        """Start a job for the onboarding and wait for it to finish."""
        job_id = await self.start(onboarding_id)
        return await self.wait(job_id)
