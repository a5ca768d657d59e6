"""Price quotes for video generation, paid in ADA.

Cost = a flat base fee in ADA plus a per-second fee in USD converted at the
current ADA/USD spot rate from CoinGecko. Quotes are recomputed on every
request.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

import httpx

from config import (
    BASE_COST_ADA,
    DEFAULT_DURATION,
    LOVELACE_PER_ADA,
    PER_SECOND_COST_USD,
    PRICE_API_URL,
    PRICE_COIN_ID,
    PRICE_VS_CURRENCY,
)
from errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

ADA_PLACES = Decimal("0.000001")
USD_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class PriceQuote:
    """Total cost of one video in ADA and USD."""

    ada_price: Decimal
    total_cost_ada: Decimal
    total_cost_usd: Decimal
    duration: int
    base_cost_ada: Decimal
    per_second_cost_usd: Decimal

    @property
    def total_cost_lovelace(self) -> int:
        """Amount the wallet has to send, in lovelace."""
        return int((self.total_cost_ada * LOVELACE_PER_ADA).to_integral_value(rounding=ROUND_DOWN))

    def to_dict(self) -> dict[str, Any]:
        return {
            "ada_price": float(self.ada_price),
            "total_cost_ada": float(self.total_cost_ada),
            "total_cost_usd": float(self.total_cost_usd),
            "total_cost_lovelace": self.total_cost_lovelace,
            "duration": self.duration,
            "base_cost_ada": float(self.base_cost_ada),
            "per_second_cost_usd": float(self.per_second_cost_usd),
        }


def parse_duration(raw: Any) -> int:
    """Return *raw* as a positive integer, or the default duration."""
    try:
        duration = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_DURATION
    return duration if duration > 0 else DEFAULT_DURATION


def compute_quote(
    ada_price: Decimal,
    duration: int,
    base_cost_ada: Decimal = BASE_COST_ADA,
    per_second_cost_usd: Decimal = PER_SECOND_COST_USD,
) -> PriceQuote:
    """Compute a quote for *duration* seconds at *ada_price* USD per ADA."""
    ada_price = Decimal(ada_price)
    if ada_price <= 0:
        raise UpstreamUnavailable("price", f"invalid ADA price: {ada_price}")

    per_second_cost_ada = per_second_cost_usd / ada_price
    total_ada = base_cost_ada + per_second_cost_ada * duration
    total_usd = base_cost_ada * ada_price + per_second_cost_usd * duration

    return PriceQuote(
        ada_price=ada_price,
        total_cost_ada=total_ada.quantize(ADA_PLACES, rounding=ROUND_HALF_UP),
        total_cost_usd=total_usd.quantize(USD_PLACES, rounding=ROUND_HALF_UP),
        duration=duration,
        base_cost_ada=base_cost_ada,
        per_second_cost_usd=per_second_cost_usd,
    )


class PriceQuoter:
    """Fetches the ADA/USD spot price and turns it into quotes."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str = PRICE_API_URL,
        base_cost_ada: Decimal = BASE_COST_ADA,
        per_second_cost_usd: Decimal = PER_SECOND_COST_USD,
    ) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.base_cost_ada = base_cost_ada
        self.per_second_cost_usd = per_second_cost_usd

    async def fetch_ada_price(self) -> Decimal:
        """Return the current ADA price in USD.

        Raises ``UpstreamUnavailable`` if CoinGecko fails or answers with an
        unexpected payload.
        """
        try:
            response = await self.client.get(
                f"{self.base_url}/simple/price",
                params={"ids": PRICE_COIN_ID, "vs_currencies": PRICE_VS_CURRENCY},
            )
            response.raise_for_status()
            data = response.json()
            return Decimal(str(data[PRICE_COIN_ID][PRICE_VS_CURRENCY]))
        except httpx.HTTPError as e:
            logger.error("ADA price request failed: %s", e)
            raise UpstreamUnavailable("price", "Failed to fetch ADA price from CoinGecko") from e
        except (ValueError, KeyError, TypeError, InvalidOperation) as e:
            logger.error("Unexpected CoinGecko payload: %s", e)
            raise UpstreamUnavailable("price", "Unexpected response from CoinGecko") from e

    async def quote(self, duration: int) -> PriceQuote:
        ada_price = await self.fetch_ada_price()
        quote = compute_quote(ada_price, duration, self.base_cost_ada, self.per_second_cost_usd)
        logger.info(
            "Quote for %ds at %s USD/ADA: %s ADA (%s USD)",
            duration, ada_price, quote.total_cost_ada, quote.total_cost_usd,
        )
        return quote
