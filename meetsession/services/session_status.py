# Session status state machine: which operation may run from which status.
# CREATED           -> AWAITING_RECEIVER (invite link produced)
# AWAITING_RECEIVER -> CONNECTED (receiver location captured)
# CONNECTED         -> READY (midpoint + candidates written), PROPOSED
# READY             -> PROPOSED
# PROPOSED          -> PROPOSED (re-propose), CONFIRMED, CONNECTED (denied)
# CONFIRMED         -> (none)

from typing import Dict, FrozenSet

from meetsession.schemas.session import SessionStatus
from meetsession.services.session_errors import IllegalTransition

S = SessionStatus

OP_LINK_SENT = "mark_link_sent"
OP_CAPTURE_RECEIVER = "capture_receiver_location"
OP_SEARCH = "compute_midpoint_and_search"
OP_PROPOSE = "propose_place"
OP_CONFIRM = "confirm_proposal"
OP_DENY = "deny_proposal"
OP_SELECT = "select_place"

# Statuses each operation may start from.
ALLOWED_FROM: Dict[str, FrozenSet[SessionStatus]] = {
    OP_LINK_SENT: frozenset({S.CREATED}),
    OP_CAPTURE_RECEIVER: frozenset({S.AWAITING_RECEIVER}),
    OP_SEARCH: frozenset({S.CONNECTED}),
    OP_PROPOSE: frozenset({S.READY, S.CONNECTED, S.PROPOSED}),
    OP_CONFIRM: frozenset({S.PROPOSED}),
    OP_DENY: frozenset({S.PROPOSED}),
    # select is gated on having candidates, not on status
    OP_SELECT: frozenset(S),
}

# Status each operation leaves the session in. None = unchanged.
RESULTING_STATUS: Dict[str, SessionStatus] = {
    OP_LINK_SENT: S.AWAITING_RECEIVER,
    OP_CAPTURE_RECEIVER: S.CONNECTED,
    OP_SEARCH: S.READY,
    OP_PROPOSE: S.PROPOSED,
    OP_CONFIRM: S.CONFIRMED,
    OP_DENY: S.CONNECTED,
}

# Order used to tell whether a session has already moved past a status.
_PROGRESS = {
    S.CREATED: 0,
    S.AWAITING_RECEIVER: 1,
    S.CONNECTED: 2,
    S.READY: 3,
    S.PROPOSED: 4,
    S.CONFIRMED: 5,
}


def check_transition(current: SessionStatus, operation: str) -> SessionStatus:
    """
    Validate `operation` against the current status and return the status it leads to.
    Raises IllegalTransition when the operation is not allowed.
    """
    allowed = ALLOWED_FROM.get(operation, frozenset())
    if current not in allowed:
        raise IllegalTransition(current.value, operation)
    return RESULTING_STATUS.get(operation, current)


def is_at_or_past(current: SessionStatus, target: SessionStatus) -> bool:
    return _PROGRESS[current] >= _PROGRESS[target]
