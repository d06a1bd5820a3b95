"""
Versionary API Test Suite.

This package contains:
- unit/: Unit tests (temporary SQLite tables, in-process TestClient)
"""
