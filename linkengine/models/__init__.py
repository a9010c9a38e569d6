"""
Database models for the link engine.

Links and their code namespace are transactional data; clicks are an
append-only log in their own table, never inlined on the link row.
"""

from .link import Link, LinkCode
from .click import Click

__all__ = ["Link", "LinkCode", "Click"]
