"""Supplier catalog checker: streaming, schema-driven validation of bulk catalog uploads."""

__version__ = "0.1.0"
