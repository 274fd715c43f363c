"""
Ingestion layer — reads session exports and groups them per user.

Submodules:
  sessions — JSON-lines / Parquet loading, dedup, per-user sort
"""
