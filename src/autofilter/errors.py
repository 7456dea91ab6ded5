"""Exception types for autofilter."""


class AutofilterError(Exception):
    """Base class for all autofilter errors."""


class DecodeError(AutofilterError):
    """A token or deep-link payload is malformed or truncated."""

    user_message = "This button has expired or its state was lost. Please redo the action."


class StoreError(AutofilterError):
    """The catalog store could not be reached or failed a query."""


class DeliveryError(AutofilterError):
    """A single item could not be delivered to a chat."""


class RangeTooLargeError(AutofilterError, ValueError):
    """A batch range exceeds the allowed size or is reversed."""

    def __init__(self, start: int, end: int, limit: int) -> None:
        self.start = start
        self.end = end
        self.limit = limit
        super().__init__(
            f"Range {start}..{end} spans {end - start} messages; "
            f"it must be between 0 and {limit}"
        )
