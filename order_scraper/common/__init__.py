"""Shared helpers: database sessions and date handling."""
