"""
Asset Catalog — resolves a human symbol to a venue asset index and size precision.

Two independent lookups are built from one universe/context fetch:
  - by declared name ("BTC")
  - by price magnitude (mark price at or above a threshold characteristic
    of the asset, e.g. BTC >= 10000)

When they disagree the price-magnitude match wins and the descriptor is
flagged ambiguous. A name match priced below its threshold with no
magnitude match anywhere is also flagged. Test venues have been seen
mislabelling assets.
Descriptors are cached per symbol for the lifetime of the catalog object.
"""

from __future__ import annotations
import asyncio
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING
from exchange.models import AssetDescriptor
from trading.errors import CatalogUnavailable, UnknownAsset, VenueTransportError
import logging

if TYPE_CHECKING:
    from exchange.hyperliquid_rest import HyperliquidRestClient

logger = logging.getLogger(__name__)

PERP_SUFFIX = "-PERP"


def normalize_symbol(symbol: str) -> str:
    """'btc-perp' -> 'BTC'"""
    name = symbol.strip().upper()
    if name.endswith(PERP_SUFFIX):
        name = name[: -len(PERP_SUFFIX)]
    return name


class AssetCatalog:
    """Owns the symbol -> AssetDescriptor cache."""

    def __init__(
        self,
        client: "HyperliquidRestClient",
        price_magnitude_thresholds: Optional[Dict[str, Decimal]] = None,
    ):
        self.client = client
        self.thresholds = {
            normalize_symbol(k): v for k, v in (price_magnitude_thresholds or {}).items()
        }
        self._cache: Dict[str, AssetDescriptor] = {}
        self._lock = asyncio.Lock()

    def cached(self, symbol: str) -> Optional[AssetDescriptor]:
        return self._cache.get(normalize_symbol(symbol))

    def invalidate(self, symbol: Optional[str] = None):
        """Drop one cached descriptor, or all of them."""
        if symbol is None:
            self._cache = {}
            logger.info("[CATALOG] Cache cleared")
        else:
            self._cache.pop(normalize_symbol(symbol), None)
            logger.info(f"[CATALOG] Cache entry dropped: {normalize_symbol(symbol)}")

    async def resolve(self, symbol: str) -> AssetDescriptor:
        """
        Resolve a symbol. Cache hit returns without a network call.
        Raises CatalogUnavailable if the universe can't be fetched,
        UnknownAsset if neither lookup finds a match.
        """
        name = normalize_symbol(symbol)
        hit = self._cache.get(name)
        if hit is not None:
            return hit

        async with self._lock:
            hit = self._cache.get(name)
            if hit is not None:
                return hit

            universe, prices = await self._fetch()
            descriptor = self._build_descriptor(name, universe, prices)
            # Replace-on-write: readers never observe a partially built map
            self._cache = {**self._cache, name: descriptor}
            return descriptor

    async def _fetch(self) -> Tuple[List[Dict], List[Optional[Decimal]]]:
        try:
            universe, ctxs = await self.client.get_meta_and_asset_ctxs()
        except VenueTransportError as e:
            raise CatalogUnavailable(f"asset universe unavailable: {e}") from e

        if not universe:
            raise CatalogUnavailable("venue returned an empty asset universe")

        prices: List[Optional[Decimal]] = []
        for i in range(len(universe)):
            ctx = ctxs[i] if i < len(ctxs) else None
            mark = ctx.get("markPx") if isinstance(ctx, dict) else None
            prices.append(Decimal(str(mark)) if mark is not None else None)
        return universe, prices

    def _build_descriptor(
        self,
        name: str,
        universe: List[Dict],
        prices: List[Optional[Decimal]],
    ) -> AssetDescriptor:
        by_symbol = self._index_by_symbol(name, universe)
        by_magnitude = self._index_by_magnitude(name, prices, by_symbol)

        if by_symbol is None and by_magnitude is None:
            raise UnknownAsset(f"asset {name} not found in venue universe")

        ambiguous = by_magnitude is not None and by_symbol != by_magnitude
        if by_magnitude is None and name in self.thresholds:
            # Name matched, but no asset (that one included) trades at this asset's magnitude
            ambiguous = True
        index = by_magnitude if by_magnitude is not None else by_symbol

        if ambiguous:
            logger.warning(
                f"[CATALOG] {name}: symbol lookup -> {by_symbol}, "
                f"price-magnitude lookup -> {by_magnitude}. Using {index} (ambiguous)"
            )

        entry = universe[index]
        hint = entry.get("tickSize")
        descriptor = AssetDescriptor(
            symbol=name,
            exchange_index=index,
            size_decimals=int(entry.get("szDecimals", 0)),
            ambiguous=ambiguous,
            tick_size_hint=Decimal(str(hint)) if hint is not None else None,
        )
        logger.info(
            f"[CATALOG] Resolved {name} -> index={descriptor.exchange_index}, "
            f"szDecimals={descriptor.size_decimals}, ambiguous={descriptor.ambiguous}"
        )
        return descriptor

    @staticmethod
    def _index_by_symbol(name: str, universe: List[Dict]) -> Optional[int]:
        for i, entry in enumerate(universe):
            if str(entry.get("name", "")).upper() == name:
                return i
        return None

    def _index_by_magnitude(
        self,
        name: str,
        prices: List[Optional[Decimal]],
        by_symbol: Optional[int],
    ) -> Optional[int]:
        threshold = self.thresholds.get(name)
        if threshold is None:
            return None

        candidates = [i for i, p in enumerate(prices) if p is not None and p >= threshold]
        if not candidates:
            return None
        if by_symbol in candidates:
            return by_symbol
        return max(candidates, key=lambda i: prices[i])
