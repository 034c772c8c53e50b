"""Query translation and result normalization for OpenTelemetry logs and metrics."""

__version__ = "0.1.0"
