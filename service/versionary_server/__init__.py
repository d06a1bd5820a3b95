"""
Versionary Server - REST API for versioned entities.

This package implements a service that stores every change to an entity
as a new version:
- Users, Organizations, Devices, Emails and Images keep full version history
- Metrics, Events and Tokens are single-version records
- Every entity is keyed by a TUID, a time-ordered unique identifier
- Secondary index rows support listing by email, status, tag and date

Invariants:
    - The current item of an entity always equals its newest version
    - Version IDs are TUIDs and sort in creation order
    - Deleting an entity removes its current item and every index row

How to change safely:
    - New index rows must be written and deleted with the entity
    - Never reuse a TUID for a different entity or version
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
