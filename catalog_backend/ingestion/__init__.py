"""
Ingestion pipeline: normalization, enrichment, home-category refresh, discovery.
"""
