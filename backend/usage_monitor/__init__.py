"""Gateway usage monitor: incremental log sync, hourly aggregates and alerting."""

__version__ = "1.0.0"
