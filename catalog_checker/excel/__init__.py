"""Streaming spreadsheet readers."""
