"""Market data service for the Crypto Dashboard API."""
