class PipelineError(Exception):
    pass


class DecodeError(PipelineError):
    """Payload is not a JSON object matching the event schema."""


class EventValidationError(PipelineError):
    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(f"Missing required fields: {', '.join(self.missing)}")


class EnrichmentFailure(PipelineError):
    """Geocode lookup failed. Never surfaced outside the enricher."""


class PersistenceError(PipelineError):
    """Store write failed. Retryable through queue redelivery."""


class FatalMessageError(PipelineError):
    """A dequeued message can never succeed and belongs in the dead-letter sink."""
