"""Shared components for NGSI Ingest."""
