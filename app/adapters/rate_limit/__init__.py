"""Rate limit store adapters.

This package provides a small abstraction layer so the limiter can run
against an in-memory store in a single process or a shared Redis store
across instances without changing the limiting logic.
"""
