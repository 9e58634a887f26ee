"""JSON schemas for addin discovery configuration files.

- discovery_config.schema.json: run configuration (Cake versions, sources,
  GitHub rate limits, pipeline concurrency)
"""
