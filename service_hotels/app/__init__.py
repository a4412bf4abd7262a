"""
Hotel search service package for the hotel booking backend.

The service fronts the third-party hotel API, serving hotel content and
room prices through an in-process response cache:
- Non-atomic caching for static hotel content.
- Single-flight caching for price polling, so concurrent identical polls
  trigger one upstream request.

Structure:
- app.main: FastAPI app, routes, and lifecycle wiring.
- app.adapters: HTTP client for the upstream hotel API.
- app.caching: Cache store, pending registry, decorators, cache manager.
"""
