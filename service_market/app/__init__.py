"""
Market data service package for the Crypto Dashboard API.

The service fronts the dashboard's data requests, enforcing:
- Rate limiting: fixed-window counters per client address in the shared store
- Caching: cache-aside reads in front of the upstream market data provider
- Retries and circuit-breaking for upstream calls

Structure:
- app.main: FastAPI app, routes, and wiring.
- app.store: Shared key-value store interface and Redis adapter.
- app.caching: Cache-aside fetch layer.
- app.ratelimit: Fixed-window limiter, profiles and client address extraction.
- app.adapters: HTTP client for the upstream provider.
- app.domain: Upstream payload transforms and cache policy.
"""
