"""Anomaly detection engine — baselines, detectors, ensemble voting and alerting."""

__version__ = "1.0.0"
