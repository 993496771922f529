"""Poll aggregator: rate-limited ingestion of public opinion polls into one canonical store."""

__version__ = "0.1.0"
