"""localgpt: run prompt actions against local or remote model servers."""

__version__ = "0.1.0"
