"""
Client for the upstream hotel content and pricing API.
"""

from typing import Any, Dict, List, Optional, TYPE_CHECKING
from urllib.parse import quote

import httpx

from shared.logging import get_logger
from shared.errors import NotFoundError, UpstreamServiceError
from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.retry import RetryConfig, RetryError, retry_on_exception

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


PRICE_QUERY_FIELDS = (
    "destination_id",
    "checkin",
    "checkout",
    "lang",
    "currency",
    "country_code",
    "guests",
    "partner_id",
)


def build_price_query(**values: Optional[str]) -> Dict[str, str]:
    """Keep the known price-search parameters that were actually supplied."""
    return {
        name: str(values[name])
        for name in PRICE_QUERY_FIELDS
        if values.get(name) is not None
    }


class HotelApiClient:
    """Async client for the third-party hotel API.

    Transport failures are retried; repeated failures open the circuit
    breaker so a struggling upstream is not hammered further.
    """

    SERVICE_NAME = "hotel_api"

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        metrics: Optional["MetricsCollector"] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.metrics = metrics
        self.logger = get_logger("hotels.hotel_api_client")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            expected_exception=(RetryError, UpstreamServiceError),
            name=self.SERVICE_NAME,
        )
        self._send = retry_on_exception(
            (httpx.TransportError,),
            config=retry_config or RetryConfig(max_attempts=3, base_delay=0.5, max_delay=5.0),
        )(self._send_once)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def list_hotels(self, destination_id: str) -> List[Dict[str, Any]]:
        """Static hotel content for every hotel in a destination."""
        return await self._get("/api/hotels", {"destination_id": destination_id}, operation="list_hotels")

    async def get_hotel(self, hotel_id: str) -> Dict[str, Any]:
        """Static content for a single hotel."""
        return await self._get(f"/api/hotels/{quote(hotel_id, safe='')}", operation="get_hotel")

    async def get_hotel_prices(self, hotel_id: str, query: Dict[str, str]) -> Dict[str, Any]:
        """Room prices for one hotel. Upstream answers ``completed: false`` until priced."""
        return await self._get(f"/api/hotels/{quote(hotel_id, safe='')}/price", query, operation="get_hotel_prices")

    async def search_prices(self, query: Dict[str, str]) -> Dict[str, Any]:
        """Cheapest price per hotel across a destination."""
        return await self._get("/api/hotels/prices", query, operation="search_prices")

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None, *, operation: str) -> Any:
        try:
            if self.metrics is not None:
                with self.metrics.time_operation("upstream_request_duration_seconds", operation=operation):
                    return await self.circuit_breaker.call(self._send, path, params)
            return await self.circuit_breaker.call(self._send, path, params)
        except (NotFoundError, UpstreamServiceError):
            raise
        except CircuitBreakerOpenException as exc:
            self.logger.warning("Hotel API circuit open", path=path)
            raise UpstreamServiceError(self.SERVICE_NAME, str(exc), {"path": path})
        except RetryError as exc:
            raise UpstreamServiceError(
                self.SERVICE_NAME,
                str(exc.last_exception),
                {"path": path, "attempts": exc.attempts},
            )

    async def _send_once(self, path: str, params: Optional[Dict[str, Any]]) -> Any:
        client = await self._get_client()
        response = await client.get(path, params=params)

        if response.status_code == 200:
            self.logger.debug("Hotel API request succeeded", path=path, params=params)
            return response.json()

        if response.status_code == 404:
            self.logger.info("Hotel API resource not found", path=path, params=params)
            raise NotFoundError(f"Hotel resource not found: {path}", {"path": path})

        self.logger.error(
            "Hotel API request failed",
            path=path,
            params=params,
            status_code=response.status_code,
            response=response.text,
        )
        raise UpstreamServiceError(
            self.SERVICE_NAME,
            f"Unexpected status {response.status_code}",
            {"status_code": response.status_code, "path": path},
        )
