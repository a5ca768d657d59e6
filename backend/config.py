"""Application configuration loaded from environment variables."""

import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

ENV_PATH = Path(__file__).resolve().parent / ".env"
load_dotenv(ENV_PATH)

# Paths
BASE_DIR = Path(__file__).resolve().parent.parent

# Blockfrost (Cardano indexer)
BLOCKFROST_PROJECT_ID: str = os.getenv("BLOCKFROST_PROJECT_ID", "")
BLOCKFROST_API_URL: str = os.getenv(
    "BLOCKFROST_API_URL", "https://cardano-mainnet.blockfrost.io/api/v0"
)
RECEIVING_ADDRESS: str = os.getenv(
    "RECEIVING_ADDRESS",
    "addr1qxtne8wp4qdmc9trp7zaaj9fzvxwhpm7veykwu9cdkk7y9m7wsx98ff5dmlg7fufan2thc3uf9yz7mrq56frvhc0mmaqgyjsld",
)

# Price oracle
PRICE_API_URL: str = os.getenv("PRICE_API_URL", "https://api.coingecko.com/api/v3")
PRICE_COIN_ID: str = "cardano"
PRICE_VS_CURRENCY: str = "usd"

# Pricing
BASE_COST_ADA: Decimal = Decimal(os.getenv("BASE_COST_ADA", "1"))
PER_SECOND_COST_USD: Decimal = Decimal(os.getenv("PER_SECOND_COST_USD", "0.1"))
DEFAULT_DURATION: int = 4
LOVELACE_PER_ADA: int = 1_000_000

# Video generation API
OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
VIDEO_MODEL: str = os.getenv("VIDEO_MODEL", "sora-2")
VIDEO_DURATIONS: tuple[str, ...] = ("4", "8", "12")
VIDEO_SIZES: tuple[str, ...] = ("1280x720", "720x1280")
DEFAULT_VIDEO_SIZE: str = "1280x720"
MAX_IMAGE_SIZE_BYTES: int = 10 * 1024 * 1024

# Polling
POLL_INTERVAL_SECONDS: float = float(os.getenv("POLL_INTERVAL_SECONDS", "5"))
PAYMENT_POLL_ATTEMPTS: int = int(os.getenv("PAYMENT_POLL_ATTEMPTS", "30"))
VIDEO_POLL_ATTEMPTS: int = int(os.getenv("VIDEO_POLL_ATTEMPTS", "60"))

# Limits
PAYMENT_MAX_AGE_SECONDS: int = int(os.getenv("PAYMENT_MAX_AGE_SECONDS", "3600"))
CLEANUP_INTERVAL_MINUTES: int = int(os.getenv("CLEANUP_INTERVAL_MINUTES", "10"))
HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))

# Server
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "10000"))
