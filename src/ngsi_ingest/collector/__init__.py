"""Collector component: turns transport messages into NGSI attribute updates."""
