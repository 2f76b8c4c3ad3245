"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from sqlalchemy import JSON, Numeric, Uuid

# Use JSON instead of JSONB for cross-database compatibility
# JSONB is PostgreSQL-specific, JSON works with both SQLite and PostgreSQL
JSONType = JSON

# Native UUID on PostgreSQL, CHAR(32) on SQLite
UUIDType = Uuid

# Money in document currency: 12 digits, 2 decimals
MoneyType = Numeric(12, 2)

# Exchange rates carry more precision than amounts so 1/rate round trips stay within a cent
RateType = Numeric(14, 6)
