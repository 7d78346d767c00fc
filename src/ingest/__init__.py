"""Feature ingestion pipeline.

This module reads raw records, converts them to typed features and
reconciles their schemas before handing them to the store layer.
"""
