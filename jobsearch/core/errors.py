"""Exception types shared by the orchestrator, adapters, and HTTP layer."""


class RequestNotFound(LookupError):
    """No request with this id is visible to the caller.

    Raised both for unknown ids and for ids owned by another user, so the
    two cases are indistinguishable to callers.
    """

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Request not found: {request_id}")
        self.request_id = request_id


class InvalidSearchParams(ValueError):
    """Search parameters were rejected before a request was created."""


class AdapterError(RuntimeError):
    """An external adapter failed; the message is safe to show to users."""


class TransientPollError(RuntimeError):
    """A status poll failed in a way that should be retried on the next tick."""
