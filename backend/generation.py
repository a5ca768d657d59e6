"""Video generation through the OpenAI videos API (Sora).

Covers job submission (gated on a confirmed payment), status lookups,
content download and the bounded wait for a job to finish. Job state lives
with the video service; nothing is stored locally.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from blockfrost import PaymentVerifier
from config import (
    DEFAULT_VIDEO_SIZE,
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    POLL_INTERVAL_SECONDS,
    VIDEO_DURATIONS,
    VIDEO_MODEL,
    VIDEO_POLL_ATTEMPTS,
    VIDEO_SIZES,
)
from errors import UpstreamUnavailable
from ledger import PaymentLedger
from payment import require_payment
from polling import PollStatus, poll

logger = logging.getLogger(__name__)

SERVICE = "video"
TERMINAL_STATUSES = ("completed", "failed")
TIMEOUT_MESSAGE = "Video generation timed out. Please try again."
VIDEO_ID_PATTERN = re.compile(r"video_[A-Za-z0-9_-]+")


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

@dataclass
class VideoJob:
    """Snapshot of a generation job as reported by the video service."""

    job_id: str
    status: str
    progress: int = 0
    error_message: str | None = None
    video_url: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def result_url(self) -> str | None:
        """Where the finished video can be fetched.

        The upstream url when the API gives one, otherwise our own proxy.
        """
        if self.video_url or self.status != "completed":
            return self.video_url
        return f"/api/video-proxy?video_id={self.job_id}"

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "VideoJob":
        error = data.get("error") or {}
        return cls(
            job_id=data["id"],
            status=data.get("status", "queued"),
            progress=int(data.get("progress") or 0),
            error_message=error.get("message") if isinstance(error, dict) else str(error),
            video_url=data.get("url"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "progress": self.progress,
            "error_message": self.error_message,
            "video_url": self.result_url,
        }


@dataclass(frozen=True)
class ImageInput:
    """Optional reference image forwarded with the job."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    seconds: str
    size: str
    image: ImageInput | None = None

    @classmethod
    def build(
        cls,
        prompt: str | None,
        seconds: str | None = None,
        size: str | None = None,
        image: ImageInput | None = None,
    ) -> "GenerationRequest":
        """Validate user input. Raises ``ValueError`` with a user-facing message."""
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValueError("Prompt is required")

        seconds = (seconds or VIDEO_DURATIONS[0]).strip()
        if seconds not in VIDEO_DURATIONS:
            raise ValueError(f"seconds must be one of {', '.join(VIDEO_DURATIONS)}")

        size = (size or DEFAULT_VIDEO_SIZE).strip()
        if size not in VIDEO_SIZES:
            raise ValueError(f"size must be one of {', '.join(VIDEO_SIZES)}")

        return cls(prompt=prompt, seconds=seconds, size=size, image=image)


@dataclass(frozen=True)
class Submission:
    """Result of a generation request: a job id, or a reason it was refused."""

    video_id: str | None = None
    payment_required: bool = False
    error: str | None = None


class GenerationStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class GenerationOutcome:
    status: GenerationStatus
    video_url: str | None = None
    error_message: str | None = None
    job: VideoJob | None = None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

def check_video_id(job_id: str | None) -> str:
    """Return *job_id* if it is a video service id. Raises ``ValueError`` otherwise."""
    if not job_id or VIDEO_ID_PATTERN.fullmatch(job_id) is None:
        raise ValueError("Invalid video ID")
    return job_id


class VideoClient:
    """Async client for the ``/videos`` endpoints of the OpenAI API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str = OPENAI_API_KEY,
        base_url: str = OPENAI_BASE_URL,
        model: str = VIDEO_MODEL,
    ) -> None:
        self.client = client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise UpstreamUnavailable(SERVICE, "OpenAI API key not configured")
        return {"Authorization": f"Bearer {self.api_key}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = self._headers()
        try:
            response = await self.client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Video API %s %s -> %d: %s", method, path, e.response.status_code, e.response.text[:500])
            raise UpstreamUnavailable(SERVICE, _api_error_message(e.response)) from e
        except httpx.HTTPError as e:
            logger.error("Video API %s %s failed: %s", method, path, e)
            raise UpstreamUnavailable(SERVICE, "Video service unreachable") from e
        return response

    async def _json(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        response = await self._request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailable(SERVICE, "Invalid response from video service") from e

    async def create_job(self, request: GenerationRequest) -> str:
        """Start a generation job and return its id."""
        fields = {
            "model": self.model,
            "prompt": request.prompt,
            "seconds": request.seconds,
            "size": request.size,
        }
        logger.info("Starting video generation: %s", {**fields, "image": bool(request.image)})

        if request.image is not None:
            image = request.image
            data = await self._json(
                "POST", "/videos",
                data=fields,
                files={"input_reference": (image.filename, image.content, image.content_type)},
            )
        else:
            data = await self._json("POST", "/videos", json=fields)

        video_id = data.get("id")
        if not video_id:
            raise UpstreamUnavailable(SERVICE, "No video ID returned from API")
        logger.info("Video job created: %s (status %s)", video_id, data.get("status"))
        return video_id

    async def get_job(self, job_id: str) -> VideoJob:
        job_id = check_video_id(job_id)
        data = await self._json("GET", f"/videos/{job_id}")
        try:
            job = VideoJob.from_api(data)
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(SERVICE, "Invalid job status from video service") from e
        if job.status == "failed":
            logger.error("Video %s failed: %s", job_id, job.error_message)
        return job

    async def download_content(self, job_id: str) -> bytes:
        job_id = check_video_id(job_id)
        response = await self._request("GET", f"/videos/{job_id}/content")
        logger.info("Video %s downloaded, size: %d bytes", job_id, len(response.content))
        return response.content

    async def open_content_stream(self, job_id: str) -> httpx.Response:
        """Open a streaming response for the job's video; caller must ``aclose()`` it."""
        job_id = check_video_id(job_id)
        request = self.client.build_request(
            "GET", f"{self.base_url}/videos/{job_id}/content", headers=self._headers(),
        )
        try:
            response = await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error("Video stream for %s failed: %s", job_id, e)
            raise UpstreamUnavailable(SERVICE, "Video service unreachable") from e
        if response.is_error:
            await response.aread()
            await response.aclose()
            logger.error("Video stream for %s -> %d", job_id, response.status_code)
            raise UpstreamUnavailable(SERVICE, _api_error_message(response))
        return response


def _api_error_message(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return f"Video service returned HTTP {response.status_code}"


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------

async def submit_generation(
    ledger: PaymentLedger,
    verifier: PaymentVerifier,
    videos: VideoClient,
    tx_hash: str | None,
    prompt: str | None,
    seconds: str | None = None,
    size: str | None = None,
    image: ImageInput | None = None,
) -> Submission:
    """Start a video job for a paid transaction.

    The payment is checked before the prompt, so an unpaid request is
    always answered with ``payment_required``. Raises ``ValueError`` for
    invalid input and ``UpstreamUnavailable`` if the video service fails.
    """
    payment = await require_payment(ledger, verifier, tx_hash)
    if not payment.confirmed:
        return Submission(payment_required=True, error=payment.error or "Payment not confirmed")

    request = GenerationRequest.build(prompt, seconds, size, image)
    video_id = await videos.create_job(request)
    return Submission(video_id=video_id)


async def wait_for_video(
    videos: VideoClient,
    job_id: str,
    interval: float = POLL_INTERVAL_SECONDS,
    max_attempts: int = VIDEO_POLL_ATTEMPTS,
    cancel: asyncio.Event | None = None,
    sleep=asyncio.sleep,
) -> GenerationOutcome:
    """Poll *job_id* until it completes, fails, or runs out of attempts.

    Server-side helper for callers that wait on a job in-process. The HTTP
    surface leaves waiting to the browser, which polls ``/api/video-status``.
    Raises ``ValueError`` for a malformed *job_id*.
    """
    check_video_id(job_id)
    outcome = await poll(
        lambda: videos.get_job(job_id),
        interval=interval,
        max_attempts=max_attempts,
        is_done=lambda job: job.is_terminal,
        cancel=cancel,
        sleep=sleep,
        label=f"video {job_id}",
    )
    job = outcome.value

    if outcome.status is PollStatus.CANCELLED:
        return GenerationOutcome(GenerationStatus.CANCELLED, job=job)
    if outcome.status is PollStatus.TIMEOUT:
        return GenerationOutcome(GenerationStatus.TIMEOUT, error_message=TIMEOUT_MESSAGE, job=job)

    if job.status == "completed":
        return GenerationOutcome(GenerationStatus.COMPLETED, video_url=job.result_url, job=job)
    return GenerationOutcome(
        GenerationStatus.FAILED,
        error_message=job.error_message or "Video generation failed",
        job=job,
    )
