"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
import uuid
from decimal import Decimal

from sqlalchemy import JSON, Numeric, Uuid

# Use JSON instead of JSONB for cross-database compatibility
JSONType = JSON

# Native UUID on PostgreSQL, CHAR(32) on SQLite
UUIDType = Uuid

# Every money column: 15 digits, 2 decimals
Money = Numeric(15, 2)
Percent = Numeric(5, 2)

# Stands in for "no entity" inside unique keys, where NULL would never collide
NIL_UUID = uuid.UUID(int=0)

ZERO = Decimal("0")
CENTS = Decimal("0.01")
