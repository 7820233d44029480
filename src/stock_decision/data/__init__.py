"""Data layer: yfinance client, caches, circuit breaker, snapshots and market data."""
