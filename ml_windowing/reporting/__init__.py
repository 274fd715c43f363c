"""
ml_windowing.reporting — window sinks and run manifests.

Modules:
  export — in-memory, JSON-lines and Parquet window sinks; manifest writer.
"""
