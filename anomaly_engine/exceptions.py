"""Typed errors raised by the anomaly engine.

Detector and enrichment failures are not represented here: they are logged
and skipped by the pipeline instead of being raised to the caller.
"""


class AnomalyEngineError(Exception):
    """Base exception for anomaly engine failures."""


class RequestValidationError(AnomalyEngineError):
    """Raised when a detection request or data source is malformed."""


class UnknownAlgorithmError(AnomalyEngineError):
    """Raised when no detector is registered for an algorithm kind."""


class ProcessorStoppedError(AnomalyEngineError):
    """Raised when a batch is submitted to a stream processor that is not running."""

    def __init__(self, processor_id: str):
        super().__init__(f"Stream processor {processor_id} is stopped")
        self.processor_id = processor_id


class AlertTransitionError(AnomalyEngineError):
    """Raised on an alert status change the alert state machine does not allow."""

    def __init__(self, alert_id: str, current: str, requested: str, allowed: list[str]):
        super().__init__(
            f"Cannot transition alert {alert_id} from {current} to {requested}. Allowed: {allowed}"
        )
        self.alert_id = alert_id
        self.current = current
        self.requested = requested
