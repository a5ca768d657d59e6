"""Shared fixtures: fake upstream services behind ``httpx.MockTransport``."""

import httpx
import pytest

from blockfrost import BlockfrostClient, PaymentVerifier
from generation import VideoClient
from ledger import PaymentLedger
from pricing import PriceQuoter

RECEIVER = "addr1_test_receiver"
BLOCKFROST_URL = "https://blockfrost.test/api/v0"
OPENAI_URL = "https://openai.test/v1"
PRICE_URL = "https://prices.test/api/v3"


class FakeClock:
    """Manually advanced replacement for ``time.time``."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeChain:
    """Minimal Blockfrost: ``/txs/{hash}`` and ``/txs/{hash}/utxos``."""

    def __init__(self) -> None:
        self.txs: dict[str, list[dict]] = {}
        self.broken_utxos: set[str] = set()
        self.statuses: dict[str, int] = {}
        self.down = False
        self.calls: list[str] = []

    def pay(self, tx_hash: str, address: str = RECEIVER, lovelace: int = 1_800_000) -> None:
        outputs = self.txs.setdefault(tx_hash, [])
        outputs.append({
            "address": address,
            "amount": [{"unit": "lovelace", "quantity": str(lovelace)}],
        })

    def reject(self, tx_hash: str, status_code: int) -> None:
        """Answer lookups of *tx_hash* with an error status, the way Blockfrost does."""
        self.statuses[tx_hash] = status_code

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request.url.path)
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)
        assert request.headers["project_id"] == "test-project"

        parts = request.url.path.split("/txs/", 1)[1].split("/")
        tx_hash = parts[0]
        if tx_hash in self.statuses:
            status = self.statuses[tx_hash]
            return httpx.Response(status, json={
                "status_code": status,
                "error": "Forbidden" if status == 403 else "Bad Request",
                "message": f"Internal detail from {request.url}",
            })
        if tx_hash not in self.txs:
            return httpx.Response(404, json={"status_code": 404, "error": "Not Found"})
        if len(parts) > 1:
            if tx_hash in self.broken_utxos:
                return httpx.Response(500, json={"status_code": 500, "error": "Internal Server Error"})
            return httpx.Response(200, json={"hash": tx_hash, "inputs": [], "outputs": self.txs[tx_hash]})
        return httpx.Response(200, json={"hash": tx_hash, "block_height": 1000})


class FakeVideoService:
    """Minimal OpenAI ``/videos`` API with scripted job statuses."""

    def __init__(self) -> None:
        self.statuses: dict[str, list[dict]] = {}
        self.created: list[httpx.Request] = []
        self.content = b"\x00\x00\x00\x18ftypmp42fake-video"
        self.down = False
        self.status_calls = 0
        self.paths: list[str] = []

    def script(self, job_id: str, *payloads: dict) -> None:
        self.statuses[job_id] = [{"id": job_id, **p} for p in payloads]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.paths.append(request.url.path)
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)
        assert request.headers["authorization"] == "Bearer test-key"

        path = request.url.path.removeprefix("/v1")
        if request.method == "POST" and path == "/videos":
            self.created.append(request)
            return httpx.Response(200, json={"id": "video_123", "object": "video", "status": "queued"})

        parts = path.strip("/").split("/")
        job_id = parts[1]
        if len(parts) == 3 and parts[2] == "content":
            if job_id not in self.statuses:
                return httpx.Response(404, json={"error": {"message": "Video not found"}})
            return httpx.Response(200, content=self.content, headers={"content-type": "video/mp4"})

        self.status_calls += 1
        script = self.statuses.get(job_id)
        if not script:
            return httpx.Response(404, json={"error": {"message": "Video not found"}})
        payload = script.pop(0) if len(script) > 1 else script[0]
        return httpx.Response(200, json=payload)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(clock):
    return PaymentLedger(clock=clock)


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def verifier(chain):
    client = httpx.AsyncClient(transport=httpx.MockTransport(chain.handler))
    return PaymentVerifier(
        BlockfrostClient(client, project_id="test-project", base_url=BLOCKFROST_URL),
        receiving_address=RECEIVER,
    )


@pytest.fixture
def video_service():
    return FakeVideoService()


@pytest.fixture
def videos(video_service):
    client = httpx.AsyncClient(transport=httpx.MockTransport(video_service.handler))
    return VideoClient(client, api_key="test-key", base_url=OPENAI_URL, model="sora-2")


@pytest.fixture
def ada_price():
    """Mutable holder for the fake CoinGecko price; set to None to fail."""
    return {"usd": 0.5}


@pytest.fixture
def quoter(ada_price):
    def handler(request: httpx.Request) -> httpx.Response:
        if ada_price["usd"] is None:
            return httpx.Response(429, json={"status": {"error_message": "rate limited"}})
        assert request.url.params["ids"] == "cardano"
        return httpx.Response(200, json={"cardano": {"usd": ada_price["usd"]}})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PriceQuoter(client, base_url=PRICE_URL)
