"""
CRM Migration

Bulk copy of the CRM's business-record tables from Supabase (PostgREST)
into MySQL.

Supports:
- Dependency-ordered table loading (parents before children)
- Field conversion to MySQL representations (JSON text, 0/1 booleans, DATETIME)
- Idempotent re-runs by skipping duplicate keys
- Direct migration or a staged export/import through JSON files
- Row-count reconciliation between source and target
"""

__version__ = "0.1.0"
