"""Snapshot-based change capture for tracked project folders."""

__version__ = "0.1.0"
