"""Shared helpers for localgpt."""
