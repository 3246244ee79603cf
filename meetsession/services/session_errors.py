# Typed failures surfaced by the session core. Routers map status_code/code to HTTP.

from typing import Optional


class MeetSessionError(Exception):
    """Base class. `code` is a stable machine-readable tag, `status_code` the HTTP mapping."""

    code = "meet_session_error"
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidLocation(MeetSessionError):
    code = "invalid_location"
    status_code = 422


class IllegalTransition(MeetSessionError):
    """Operation not allowed from the session's current status. Session untouched."""

    code = "illegal_transition"
    status_code = 409

    def __init__(self, from_state: str, operation: str):
        self.from_state = from_state
        self.operation = operation
        super().__init__(f"'{operation}' is not allowed while session is {from_state}.")


class UnknownPlace(MeetSessionError):
    code = "unknown_place"
    status_code = 400

    def __init__(self, place_id: str):
        self.place_id = place_id
        super().__init__(f"Place {place_id!r} is not one of the session's candidate places.")


class InvalidInviteToken(MeetSessionError):
    code = "invalid_invite_token"
    status_code = 403


class SessionNotFound(MeetSessionError):
    code = "session_not_found"
    status_code = 404

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found.")


class StoreConflict(MeetSessionError):
    """Optimistic write lost a race: the row changed since it was read."""

    code = "store_conflict"
    status_code = 409
