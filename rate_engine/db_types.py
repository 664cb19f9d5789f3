"""Column types shared by the rate card and pincode master tables.

Both tables must work on PostgreSQL in production and SQLite in tests.
"""
from sqlalchemy import JSON, Uuid

# zone_pricing, cod_slabs, customer_overrides; plain JSON rather than JSONB
JSONType = JSON

# Native UUID on PostgreSQL, CHAR(32) on SQLite
UUIDType = Uuid
