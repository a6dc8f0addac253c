"""Structured traffic logging."""
