"""Protocol exchange state keyed by thread id."""

from dataclasses import dataclass, field
import logging
import time
from typing import Any, Callable, Dict, Optional

LOG = logging.getLogger(__name__)


@dataclass
class Exchange:
    """An open request awaiting its response."""

    thid: str
    protocol: str
    request: Dict[str, Any]
    expires_at: float
    state: Dict[str, Any] = field(default_factory=dict)


class ExchangeStore:
    """Open, look up and close exchanges.

    Exchanges expire ``ttl`` seconds after they were opened; expired
    exchanges are never returned; ``collect_garbage`` drops them and runs
    whenever an exchange is opened.
    """

    def __init__(
        self, ttl: float = 3600.0, clock: Callable[[], float] = time.monotonic
    ):
        """Initialize the store."""
        self.ttl = ttl
        self.clock = clock
        self._exchanges: Dict[str, Exchange] = {}

    def __len__(self) -> int:
        """Return the number of stored exchanges, expired ones included."""
        return len(self._exchanges)

    def open(
        self, thid: str, protocol: str, request: Optional[Dict[str, Any]] = None
    ) -> Exchange:
        """Open an exchange for a request."""
        self.collect_garbage()
        if thid in self._exchanges:
            raise ValueError(f"Exchange {thid} is already open")
        expires_at = self.clock() + self.ttl
        exchange = Exchange(thid, protocol, dict(request or {}), expires_at)
        self._exchanges[thid] = exchange
        LOG.debug("Opened %s exchange %s", protocol, thid)
        return exchange

    def get(self, thid: str, protocol: Optional[str] = None) -> Optional[Exchange]:
        """Return the open exchange of a thread, if any."""
        exchange = self._exchanges.get(thid)
        if not exchange:
            return None
        if self._expired(exchange):
            del self._exchanges[thid]
            return None
        if protocol and exchange.protocol != protocol:
            return None
        return exchange

    def close(self, thid: str) -> Optional[Exchange]:
        """Close an exchange, returning it if it was open."""
        exchange = self._exchanges.pop(thid, None)
        if exchange and self._expired(exchange):
            return None
        if exchange:
            LOG.debug("Closed %s exchange %s", exchange.protocol, thid)
        return exchange

    def collect_garbage(self) -> int:
        """Drop expired exchanges, returning how many were dropped."""
        expired = [
            thid
            for thid, exchange in self._exchanges.items()
            if self._expired(exchange)
        ]
        for thid in expired:
            del self._exchanges[thid]
        return len(expired)

    def _expired(self, exchange: Exchange) -> bool:
        return self.clock() >= exchange.expires_at
