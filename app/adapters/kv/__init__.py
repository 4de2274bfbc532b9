"""Key-value store adapters.

The rate limiter only needs get / set-with-expiry / delete / scan over a shared
store. Redis backs production deployments; the in-memory store serves single
process development and tests.
"""
