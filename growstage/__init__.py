"""GrowStage — growth-stage task prioritization and scheduling engine."""

__version__ = "1.0.0"
