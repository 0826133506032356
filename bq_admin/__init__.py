"""BigQuery admin console backend."""

__version__ = "0.1.0"
