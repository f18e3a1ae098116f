"""
Error taxonomy shared by the duty timeline and HOS compliance apps.

Validation errors are returned to the caller synchronously and are never
retried by the engine. Store errors are transient: the mutating call that
raised them left nothing behind and may be retried.
"""


class HOSEngineError(Exception):
    """Base class for every error raised by the HOS engine."""
    pass


class TimelineValidationError(HOSEngineError):
    """A proposed timeline change was rejected."""
    pass


class OutOfOrderEvent(TimelineValidationError):
    """A live-source event precedes the driver's current open interval.

    Resubmit the change as an amendment instead.
    """
    pass


class ConflictingInterval(TimelineValidationError):
    """A change would overlap (or uncover) a neighbouring active interval."""
    pass


class AlreadySuperseded(TimelineValidationError):
    """The interval being amended has already been superseded."""
    pass


class MissingEditReason(TimelineValidationError):
    """An amendment was submitted without an edit reason."""
    pass


class StoreError(HOSEngineError):
    """Transient failure talking to the timeline store."""
    pass


class StoreTimeout(StoreError):
    """A store operation or driver lock did not complete within the timeout."""
    pass


class StoreUnavailable(StoreError):
    """The timeline store could not be reached."""
    pass
