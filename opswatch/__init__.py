"""opswatch — health monitoring and alerting aggregator."""

__version__ = "0.1.0"
