"""FastAPI application for pay-with-ADA AI video generation."""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response, StreamingResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ValidationError
from starlette.background import BackgroundTask

from blockfrost import BlockfrostClient, PaymentVerifier, is_valid_tx_hash
from config import (
    BASE_DIR,
    BLOCKFROST_PROJECT_ID,
    CLEANUP_INTERVAL_MINUTES,
    HOST,
    HTTP_TIMEOUT_SECONDS,
    MAX_IMAGE_SIZE_BYTES,
    OPENAI_API_KEY,
    PAYMENT_MAX_AGE_SECONDS,
    PORT,
    RECEIVING_ADDRESS,
)
from errors import UpstreamUnavailable
from generation import ImageInput, VideoClient, submit_generation
from ledger import PaymentLedger, PaymentParams
from payment import check_payment
from pricing import PriceQuoter, parse_duration
from qrcode_gen import generate_payment_qr

logger = logging.getLogger(__name__)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

CLEANUP_SECONDS = CLEANUP_INTERVAL_MINUTES * 60

EMPTY_QUOTE = {
    "ada_price": 0,
    "total_cost_ada": 0,
    "total_cost_usd": 0,
    "total_cost_lovelace": 0,
    "duration": 0,
    "base_cost_ada": 0,
    "per_second_cost_usd": 0,
}


async def _cleanup_old_payments(ledger: PaymentLedger) -> None:
    """Periodically drop payment claims older than PAYMENT_MAX_AGE_SECONDS."""
    while True:
        await asyncio.sleep(CLEANUP_SECONDS)
        ledger.evict_older_than(PAYMENT_MAX_AGE_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build shared clients and the ledger, start the cleanup task."""
    if not BLOCKFROST_PROJECT_ID:
        logger.warning("BLOCKFROST_PROJECT_ID not set - payments cannot be verified")
    if not OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY not set - video generation is disabled")

    client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
    ledger = PaymentLedger()
    app.state.ledger = ledger
    app.state.quoter = PriceQuoter(client)
    app.state.verifier = PaymentVerifier(BlockfrostClient(client))
    app.state.videos = VideoClient(client)

    task = asyncio.create_task(_cleanup_old_payments(ledger))
    yield
    task.cancel()
    await client.aclose()


app = FastAPI(
    title="ADA Video Generator",
    description="Pay with ADA to generate AI videos",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Serve frontend static files
FRONTEND_DIR = BASE_DIR / "frontend"
if FRONTEND_DIR.exists():
    app.mount("/static", StaticFiles(directory=str(FRONTEND_DIR)), name="static")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_ledger(request: Request) -> PaymentLedger:
    return request.app.state.ledger


def get_quoter(request: Request) -> PriceQuoter:
    return request.app.state.quoter


def get_verifier(request: Request) -> PaymentVerifier:
    return request.app.state.verifier


def get_videos(request: Request) -> VideoClient:
    return request.app.state.videos


class PaymentClaim(BaseModel):
    tx_hash: str = ""
    duration: int = 0
    prompt: str = ""
    size: str = ""
    image: str | None = None
    expected_amount: int = 0


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/api/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok", "service": "ada-video-generator"}


@app.get("/api/calculate-price")
async def calculate_price(
    duration: str | None = None,
    quoter: PriceQuoter = Depends(get_quoter),
) -> JSONResponse:
    """Quote the ADA and USD cost of a video of *duration* seconds."""
    try:
        quote = await quoter.quote(parse_duration(duration))
    except UpstreamUnavailable as e:
        return JSONResponse({**EMPTY_QUOTE, "error": e.message}, status_code=503)
    return JSONResponse(quote.to_dict())


@app.get("/api/payment-info")
async def payment_info(
    duration: str | None = None,
    quoter: PriceQuoter = Depends(get_quoter),
) -> JSONResponse:
    """Receiving address, quote and a QR code for manual wallet payments."""
    try:
        quote = await quoter.quote(parse_duration(duration))
    except UpstreamUnavailable as e:
        raise HTTPException(status_code=503, detail=e.message)

    return JSONResponse({
        "address": RECEIVING_ADDRESS,
        "amount_lovelace": quote.total_cost_lovelace,
        "quote": quote.to_dict(),
        "qr_code": generate_payment_qr(RECEIVING_ADDRESS, quote.total_cost_ada),
    })


def _claim_error(message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=400)


@app.post("/api/process-payment")
async def process_payment(
    request: Request,
    ledger: PaymentLedger = Depends(get_ledger),
) -> JSONResponse:
    """Record a payment claim right after the wallet submitted the transaction."""
    # wrong types answer with the same {success, error} body as missing fields
    try:
        claim = PaymentClaim.model_validate(await request.json())
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
        logger.warning("Rejected payment claim: %s", e)
        return _claim_error("Invalid payment claim")

    if not claim.tx_hash or claim.duration <= 0 or not claim.prompt or claim.expected_amount <= 0:
        return _claim_error("Missing required fields: tx_hash, duration, prompt, expected_amount")
    if not is_valid_tx_hash(claim.tx_hash):
        return _claim_error("Invalid transaction hash")

    ledger.record(
        claim.tx_hash,
        PaymentParams(duration=claim.duration, prompt=claim.prompt, size=claim.size, image=claim.image),
        claim.expected_amount,
    )
    return JSONResponse({"success": True, "tx_hash": claim.tx_hash})


@app.get("/api/check-payment")
async def check_payment_endpoint(
    tx_hash: str = "",
    ledger: PaymentLedger = Depends(get_ledger),
    verifier: PaymentVerifier = Depends(get_verifier),
) -> JSONResponse:
    """Frontend polls this until the payment is confirmed on chain."""
    if not tx_hash:
        return JSONResponse({"confirmed": False, "error": "Transaction hash is required"}, status_code=400)
    if not is_valid_tx_hash(tx_hash):
        return JSONResponse({"confirmed": False, "error": "Invalid transaction hash"}, status_code=400)

    result = await check_payment(ledger, verifier, tx_hash)
    return JSONResponse({**result.to_dict(), "tx_hash": tx_hash, "final": result.is_final})


@app.post("/api/generate")
async def generate(
    prompt: str = Form(""),
    size: str = Form(""),
    seconds: str = Form(""),
    tx_hash: str = Form(""),
    image: UploadFile | None = File(None),
    ledger: PaymentLedger = Depends(get_ledger),
    verifier: PaymentVerifier = Depends(get_verifier),
    videos: VideoClient = Depends(get_videos),
) -> JSONResponse:
    """Start a video generation job for a paid transaction."""
    image_input = None
    if image is not None and image.filename:
        content = await image.read()
        if len(content) > MAX_IMAGE_SIZE_BYTES:
            raise HTTPException(
                status_code=413,
                detail=f"Image too large. Max {MAX_IMAGE_SIZE_BYTES // (1024*1024)}MB",
            )
        image_input = ImageInput(
            filename=image.filename,
            content=content,
            content_type=image.content_type or "application/octet-stream",
        )

    try:
        submission = await submit_generation(
            ledger, verifier, videos, tx_hash, prompt, seconds or None, size or None, image_input,
        )
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except UpstreamUnavailable as e:
        return JSONResponse({"error": e.message}, status_code=503)

    if submission.payment_required:
        return JSONResponse(
            {"error": submission.error, "payment_required": True},
            status_code=402,
        )
    return JSONResponse({"video_id": submission.video_id})


@app.get("/api/video-status")
async def video_status(
    video_id: str = "",
    videos: VideoClient = Depends(get_videos),
) -> JSONResponse:
    """Report progress of a generation job."""
    if not video_id:
        return JSONResponse({"status": "error", "error": "Video ID is required"}, status_code=400)

    try:
        job = await videos.get_job(video_id)
    except ValueError as e:
        return JSONResponse({"status": "error", "error": str(e)}, status_code=400)
    except UpstreamUnavailable as e:
        return JSONResponse({"status": "error", "error": e.message}, status_code=503)
    return JSONResponse(job.to_dict())


@app.get("/api/download-video")
async def download_video(
    video_id: str = "",
    videos: VideoClient = Depends(get_videos),
) -> Response:
    """Download the finished video in one piece."""
    if not video_id:
        raise HTTPException(status_code=400, detail="Video ID is required")

    try:
        content = await videos.download_content(video_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UpstreamUnavailable as e:
        raise HTTPException(status_code=503, detail=e.message)

    return Response(
        content=content,
        media_type="video/mp4",
        headers={
            "Content-Length": str(len(content)),
            "Content-Disposition": f'inline; filename="video-{video_id}.mp4"',
        },
    )


@app.get("/api/video-proxy")
async def video_proxy(
    video_id: str = "",
    videos: VideoClient = Depends(get_videos),
) -> StreamingResponse:
    """Stream the finished video from the video service."""
    if not video_id:
        raise HTTPException(status_code=400, detail="Video ID is required")

    try:
        upstream = await videos.open_content_stream(video_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UpstreamUnavailable as e:
        raise HTTPException(status_code=503, detail=e.message)

    return StreamingResponse(
        upstream.aiter_bytes(),
        media_type="video/mp4",
        headers={"Cache-Control": "public, max-age=31536000"},
        background=BackgroundTask(upstream.aclose),
    )


# Serve frontend index at root
@app.get("/")
async def serve_index() -> FileResponse:
    """Serve the frontend index.html."""
    index_path = FRONTEND_DIR / "index.html"
    if not index_path.exists():
        raise HTTPException(status_code=404, detail="Frontend not found")
    return FileResponse(str(index_path), media_type="text/html")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=HOST, port=PORT, reload=True)
