"""Data models for localgpt."""
