"""Persistence adapters (PostgreSQL via psycopg2, local mode stores)."""
