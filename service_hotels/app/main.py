"""
Hotel search service: upstream hotel content and prices behind a response cache.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import Query, Request

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import CacheKeyNotFoundError

from .adapters.hotel_api_client import HotelApiClient, build_price_query
from .caching.cache_manager import CacheManager


class HotelService(BaseService):
    """Hotel search service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        hotel_client: Optional[HotelApiClient] = None,
        cache_manager: Optional[CacheManager] = None,
    ):
        super().__init__("hotels", 3000, config)
        self.cache_manager = cache_manager or CacheManager(
            default_ttl=self.config.cache_default_ttl,
            check_period=self.config.cache_check_period,
            wait_timeout_ms=self.config.cache_wait_timeout_ms,
            metrics=self.metrics,
        )
        self.hotel_client = hotel_client or HotelApiClient(
            self.config.hotel_api_url,
            timeout=self.config.hotel_api_timeout,
            failure_threshold=self.config.hotel_api_failure_threshold,
            recovery_timeout=self.config.hotel_api_recovery_timeout,
            metrics=self.metrics,
        )

        self._setup_hotel_routes()
        self._setup_cache_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.hotel_service = self

    async def on_startup(self) -> None:
        await self.cache_manager.open()

    async def on_shutdown(self) -> None:
        await self.cache_manager.close()
        await self.hotel_client.close()

    async def _check_dependencies(self) -> Dict[str, str]:
        return {
            "cache": "ok" if self.cache_manager.store.is_open else "closed",
            "hotel_api": self.hotel_client.circuit_breaker.get_state()["state"],
        }

    def _setup_hotel_routes(self):
        """Set up hotel search routes."""
        hotels_cache = self.cache_manager.cached(self.config.hotels_cache_ttl)
        # Price endpoints are polled by many clients at once while upstream prices.
        prices_cache = self.cache_manager.atomic_cached(self.config.prices_cache_ttl)

        @self.app.get("/")
        async def root():
            return {"service": self.service_name, "message": "Welcome to the Hotel API!"}

        @self.app.get("/hotels")
        @hotels_cache
        async def list_hotels(request: Request, destination_id: str = Query(...)):
            """Hotels in a destination."""
            return await self.hotel_client.list_hotels(destination_id)

        @self.app.get("/hotels/prices")
        @prices_cache
        async def search_prices(
            request: Request,
            destination_id: str = Query(...),
            checkin: Optional[str] = None,
            checkout: Optional[str] = None,
            lang: Optional[str] = None,
            currency: Optional[str] = None,
            country_code: Optional[str] = None,
            guests: Optional[str] = None,
            partner_id: Optional[str] = None,
        ):
            """Destination-wide price search."""
            query = build_price_query(
                destination_id=destination_id,
                checkin=checkin,
                checkout=checkout,
                lang=lang,
                currency=currency,
                country_code=country_code,
                guests=guests,
                partner_id=partner_id,
            )
            return await self.hotel_client.search_prices(query)

        @self.app.get("/hotels/{hotel_id}")
        @hotels_cache
        async def get_hotel(hotel_id: str, request: Request):
            """Static content for one hotel."""
            return await self.hotel_client.get_hotel(hotel_id)

        @self.app.get("/hotels/{hotel_id}/prices")
        @prices_cache
        async def get_hotel_prices(
            hotel_id: str,
            request: Request,
            destination_id: Optional[str] = None,
            checkin: Optional[str] = None,
            checkout: Optional[str] = None,
            lang: Optional[str] = None,
            currency: Optional[str] = None,
            country_code: Optional[str] = None,
            guests: Optional[str] = None,
            partner_id: Optional[str] = None,
        ):
            """Room prices for one hotel."""
            query = build_price_query(
                destination_id=destination_id,
                checkin=checkin,
                checkout=checkout,
                lang=lang,
                currency=currency,
                country_code=country_code,
                guests=guests,
                partner_id=partner_id,
            )
            return await self.hotel_client.get_hotel_prices(hotel_id, query)

    def _setup_cache_routes(self):
        """Set up cache management routes."""
        cache = self.cache_manager

        @self.app.get("/cache/stats")
        async def get_cache_stats():
            keys = cache.keys()
            return {
                "stats": cache.stats(),
                "total_keys": len(keys),
                "keys_list": keys,
                "timestamp": _now_iso(),
            }

        @self.app.get("/cache/keys")
        async def get_cache_keys():
            entries = cache.snapshot()
            return {
                "total_keys": len(entries),
                "cache": entries,
                "timestamp": _now_iso(),
            }

        @self.app.get("/cache/key/{key:path}")
        async def get_cache_key(key: str):
            described = cache.describe_key(key)
            if described is None:
                raise CacheKeyNotFoundError(key)
            return described

        @self.app.delete("/cache/key/{key:path}")
        async def delete_cache_key(key: str):
            if not cache.delete(key):
                raise CacheKeyNotFoundError(key)
            return {"message": "Cache key deleted", "key": key, "timestamp": _now_iso()}

        @self.app.delete("/cache/clear")
        async def clear_cache():
            cleared = cache.clear_all()
            return {"message": "All cache cleared", "keys_cleared": cleared, "timestamp": _now_iso()}

        @self.app.delete("/cache/clear/{pattern:path}")
        async def clear_cache_pattern(pattern: str):
            cleared = cache.clear_by_pattern(pattern)
            return {
                "message": f"Cache cleared for pattern: {pattern}",
                "pattern": pattern,
                "keys_cleared": cleared,
                "timestamp": _now_iso(),
            }


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_app():
    """Create FastAPI application."""
    service = HotelService()
    return service.app


if __name__ == "__main__":
    service = HotelService()
    service.run()
