"""Request lifecycle state machine.

  pending    -> processing | failed | cancelled
  processing -> filtering  | failed | cancelled
  filtering  -> enriching  | failed | cancelled
  enriching  -> completed  | failed | cancelled

completed, failed, and cancelled are terminal.
"""

from jobsearch.core.schemas import RequestStatus

_STAGE_ORDER: tuple[RequestStatus, ...] = (
    RequestStatus.PENDING,
    RequestStatus.PROCESSING,
    RequestStatus.FILTERING,
    RequestStatus.ENRICHING,
    RequestStatus.COMPLETED,
)

_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    current: frozenset({following, RequestStatus.FAILED, RequestStatus.CANCELLED})
    for current, following in zip(_STAGE_ORDER, _STAGE_ORDER[1:])
}


class InvalidTransition(ValueError):
    """A status change that the lifecycle does not allow."""

    def __init__(self, current: RequestStatus, target: RequestStatus) -> None:
        super().__init__(f"Cannot move request from '{current.value}' to '{target.value}'")
        self.current = current
        self.target = target


def allowed_targets(current: RequestStatus) -> frozenset[RequestStatus]:
    """Statuses reachable in one step from *current* (empty when terminal)."""
    return _TRANSITIONS.get(current, frozenset())


def is_terminal(status: RequestStatus) -> bool:
    return status.is_terminal


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in allowed_targets(current)


def check_transition(current: RequestStatus, target: RequestStatus) -> None:
    """Raise InvalidTransition unless *current* -> *target* is allowed."""
    if not can_transition(current, target):
        raise InvalidTransition(current, target)


def next_stage(current: RequestStatus) -> RequestStatus | None:
    """The next status on the success path, or None for terminal statuses."""
    if current.is_terminal:
        return None
    return _STAGE_ORDER[_STAGE_ORDER.index(current) + 1]


def progress_rank(status: RequestStatus) -> int:
    """Monotonic rank: observed ranks for one request never decrease."""
    if status in (RequestStatus.FAILED, RequestStatus.CANCELLED):
        return len(_STAGE_ORDER)
    return _STAGE_ORDER.index(status)
