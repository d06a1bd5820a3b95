"""
HTTP API for the Versionary server.

Each module defines one FastAPI router; app.create_app() assembles them
with the bearer token middleware and the error envelope handlers.

Invariants:
    - Every non-2xx response uses the error envelope from errors.py
    - Handlers receive services and caller identity through Depends()

How to change safely:
    - Add a router module and register it in app.ROUTERS
    - Keep route paths and status codes stable; clients depend on them
"""

from .app import create_app

__all__ = ["create_app"]
