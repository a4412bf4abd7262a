"""
Adapters for services the hotel backend depends on.
"""

from .hotel_api_client import HotelApiClient, build_price_query

__all__ = ["HotelApiClient", "build_price_query"]
