"""Utility helpers: errors and invariants, logging, time and formatting."""
