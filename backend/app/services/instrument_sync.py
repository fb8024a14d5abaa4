"""
Instrument Synchronization Service
SignalBridge Webhook Relay

Downloads the Upstox instrument master (gzip JSON, one file per
exchange) and keeps two in-memory maps:
- instrument_key -> Instrument (used by search)
- trading_symbol -> Instrument (used to resolve webhook symbols)

When a download fails, a local ``{SEGMENT}.json`` copy is used if one
exists; otherwise that segment keeps whatever it had before.

Single writer: sync() runs at startup and from the resync job only.
"""

import gzip
import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import aiohttp
from loguru import logger

from app.core.exceptions import InstrumentNotFound


# Upstox Instrument URLs (JSON - recommended by docs)
UPSTOX_INSTRUMENT_URLS = {
    "NSE": "https://assets.upstox.com/market-quote/instruments/exchange/NSE.json.gz",
    "BSE": "https://assets.upstox.com/market-quote/instruments/exchange/BSE.json.gz",
    "MCX": "https://assets.upstox.com/market-quote/instruments/exchange/MCX.json.gz",
}

DEFAULT_SEGMENTS = ("NSE", "BSE", "MCX")

# When the same trading symbol is listed on several exchanges
PREFERRED_EXCHANGE = "NSE"

MAX_SEARCH_RESULTS = 50


@dataclass
class Instrument:
    """Parsed Upstox instrument data."""
    instrument_key: str  # NSE_EQ|INE062A01020
    trading_symbol: str
    exchange: str
    instrument_type: str = ""
    name: str = ""
    segment: str = ""
    lot_size: int = 1

    @classmethod
    def from_upstox(cls, data: Dict[str, Any]) -> Optional["Instrument"]:
        """Parse one catalog record; None if it has neither key nor symbol."""
        key = data.get("instrument_key") or ""
        symbol = data.get("trading_symbol") or ""
        if not key and not symbol:
            return None
        try:
            lot_size = int(data.get("lot_size") or 1)
        except (TypeError, ValueError):
            lot_size = 1
        return cls(
            instrument_key=key,
            trading_symbol=symbol,
            exchange=data.get("exchange") or "",
            instrument_type=data.get("instrument_type") or "",
            name=data.get("name") or "",
            segment=data.get("segment") or "",
            lot_size=lot_size,
        )

    @property
    def is_equity(self) -> bool:
        """Check if instrument is equity."""
        return self.instrument_type.upper() in ("EQ", "EQUITY")

    @property
    def is_future(self) -> bool:
        """Check if instrument is futures."""
        return self.instrument_type.upper().startswith("FUT")

    @property
    def is_option(self) -> bool:
        """Check if instrument is options."""
        kind = self.instrument_type.upper()
        return kind.startswith("OPT") or kind in ("CE", "PE")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instrument_key": self.instrument_key,
            "trading_symbol": self.trading_symbol,
            "exchange": self.exchange,
            "instrument_type": self.instrument_type,
            "name": self.name,
            "segment": self.segment,
            "lot_size": self.lot_size,
        }


@dataclass
class SyncStats:
    """Result of syncing one segment."""
    segment: str
    source: str = "none"  # remote, fallback, none
    loaded: int = 0
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)


def split_symbol(qualified_symbol: str) -> str:
    """'NSE:SBIN' -> 'SBIN'; an unprefixed symbol is returned as is."""
    return qualified_symbol.strip().split(":")[-1]


class InstrumentDirectory:
    """
    In-memory instrument master.

    Usage:
        directory = InstrumentDirectory(fallback_dir=Path("instruments"))
        await directory.sync()
        key = directory.lookup("NSE:SBIN")
    """

    def __init__(
        self,
        segments: Sequence[str] = DEFAULT_SEGMENTS,
        fallback_dir: Optional[Path] = None,
        urls: Optional[Dict[str, str]] = None,
        download_timeout: float = 120,
    ):
        self.segments = tuple(segments)
        self.fallback_dir = Path(fallback_dir) if fallback_dir else None
        self.urls = urls or UPSTOX_INSTRUMENT_URLS
        self._download_timeout = download_timeout
        self._http_session: Optional[aiohttp.ClientSession] = None

        self._by_key: Dict[str, Instrument] = {}
        self._by_symbol: Dict[str, Instrument] = {}
        self.last_sync: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self._by_key)

    async def _get_http_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._http_session is None or self._http_session.closed:
            timeout = aiohttp.ClientTimeout(total=self._download_timeout)
            self._http_session = aiohttp.ClientSession(timeout=timeout)
        return self._http_session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._http_session and not self._http_session.closed:
            await self._http_session.close()

    # =========================================================================
    # Sync
    # =========================================================================

    async def sync(self) -> List[SyncStats]:
        """
        Refresh every segment from Upstox, falling back to local files.

        Never raises; failures are logged and reported in the stats.
        """
        logger.info(f"Starting instrument sync for: {', '.join(self.segments)}")
        results = []

        for segment in self.segments:
            stats = SyncStats(segment=segment)
            try:
                records = await self._download_segment(segment)
                stats.loaded = self.load(records)
                stats.source = "remote"
                logger.info(f"{segment} sync completed ({stats.loaded} instruments)")
            except Exception as e:
                stats.error = str(e)
                logger.error(f"Error syncing {segment}: {e}")
                self._load_fallback(segment, stats)
            results.append(stats)

        self.last_sync = datetime.now()
        logger.info(f"Total instruments in map: {len(self._by_key)}")
        return results

    async def _download_segment(self, segment: str) -> List[Dict[str, Any]]:
        """Download and decompress one segment's catalog."""
        url = self.urls[segment]
        session = await self._get_http_session()

        logger.info(f"Fetching {segment} instruments from {url}")
        async with session.get(url) as response:
            if response.status != 200:
                raise RuntimeError(f"HTTP {response.status} for {url}")
            content = await response.read()

        data = json.loads(gzip.decompress(content).decode("utf-8"))
        if not isinstance(data, list):
            raise ValueError(f"Unexpected catalog format for {segment}")
        return data

    def _load_fallback(self, segment: str, stats: SyncStats) -> None:
        if not self.fallback_dir:
            return
        local_path = self.fallback_dir / f"{segment}.json"
        if not local_path.exists():
            logger.warning(f"No local fallback for {segment}; keeping previous entries")
            return

        logger.info(f"Loading {segment} from local fallback: {local_path}")
        try:
            records = json.loads(local_path.read_text(encoding="utf-8"))
            stats.loaded = self.load(records)
            stats.source = "fallback"
            logger.info(f"{segment} loaded from local fallback ({stats.loaded} instruments)")
        except (OSError, ValueError) as e:
            logger.error(f"Local fallback failed for {segment}: {e}")

    def load(self, records: Iterable[Dict[str, Any]]) -> int:
        """
        Merge catalog records into both maps.

        By symbol, the later record wins unless that would replace an
        NSE listing with another exchange's.

        Returns:
            Number of instruments parsed
        """
        count = 0
        for item in records:
            if not isinstance(item, dict):
                continue
            inst = Instrument.from_upstox(item)
            if inst is None:
                continue
            count += 1

            if inst.instrument_key:
                self._by_key[inst.instrument_key] = inst
            if inst.trading_symbol:
                existing = self._by_symbol.get(inst.trading_symbol)
                if (
                    existing is None
                    or inst.exchange == PREFERRED_EXCHANGE
                    or existing.exchange != PREFERRED_EXCHANGE
                ):
                    self._by_symbol[inst.trading_symbol] = inst
        return count

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, qualified_symbol: str) -> Optional[Instrument]:
        """Resolve "NSE:SBIN" or "SBIN" to an Instrument."""
        return self._by_symbol.get(split_symbol(qualified_symbol))

    def lookup(self, qualified_symbol: str) -> Optional[str]:
        """Resolve "NSE:SBIN" or "SBIN" to an Upstox instrument key."""
        instrument = self.get(qualified_symbol)
        if instrument is None:
            logger.warning(f"Instrument not found in map: {split_symbol(qualified_symbol)}")
            return None
        return instrument.instrument_key

    def require(self, qualified_symbol: str) -> str:
        """Like lookup(), but raises InstrumentNotFound."""
        key = self.lookup(qualified_symbol)
        if key is None:
            raise InstrumentNotFound(split_symbol(qualified_symbol))
        return key

    def search(
        self,
        query: Optional[str],
        instrument_type: Optional[str] = None,
        limit: int = MAX_SEARCH_RESULTS,
    ) -> List[Instrument]:
        """
        Substring search over trading symbol and name.

        Ranking: exact symbol match, then symbol prefix, then equities.
        ``instrument_type`` is one of EQUITY, FUTURE, OPTION.
        """
        query = (query or "").strip().upper()
        if len(query) < 2:
            return []
        kind = (instrument_type or "").strip().upper()

        matches = []
        for inst in self._by_key.values():
            symbol = inst.trading_symbol.upper()
            if query not in symbol and query not in inst.name.upper():
                continue
            if kind == "EQUITY" and not inst.is_equity:
                continue
            if kind == "FUTURE" and not inst.is_future:
                continue
            if kind == "OPTION" and not inst.is_option:
                continue
            matches.append(inst)

        # sorted() is stable, so ties keep directory order
        matches.sort(key=lambda inst: (
            inst.trading_symbol.upper() != query,
            not inst.trading_symbol.upper().startswith(query),
            not inst.is_equity,
        ))
        return matches[:limit]
