"""Feature storage layer.

This module holds the catalog contract and implementations, writer
pools, query filters and dataset export for the ingest pipeline.
"""
