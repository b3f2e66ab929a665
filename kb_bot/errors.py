"""Pipeline error taxonomy."""


class PipelineError(Exception):
    """Base class for pipeline errors."""

    retryable = False


class MalformedEvent(PipelineError):
    """Inbound event has no derivable ordering key or dedup token."""


class SignatureRejected(PipelineError):
    """Inbound request failed the authenticity check."""


class EnqueueUnavailable(PipelineError):
    """Queue store could not accept the message. The caller should retry."""

    retryable = True


class InvalidLease(PipelineError):
    """Lease expired, was superseded by a redelivery, or never existed."""


class ConsumerFailure(PipelineError):
    """Consumption failed or ran out of time; recovered by redelivery."""


class SchedulerFiringFailure(PipelineError):
    """Scheduled sync failed; not retried until the next firing."""
