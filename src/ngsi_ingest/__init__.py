"""NGSI Ingest - transport measures to NGSI context broker bridge."""

__version__ = "0.1.0"
