# Meet session API: create, receiver join, search, propose/confirm/deny, select, stream

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from meetsession.realtime.change_feed import stream_session_events
from meetsession.schemas.session import Coordinate, MeetSession
from meetsession.schemas.session_api import (
    LocationBody,
    PlaceChoiceBody,
    ReceiverLocationBody,
    SessionCreate,
    SessionCreatedOut,
)
from meetsession.services.session_errors import MeetSessionError
from meetsession.services.session_lifecycle import SessionLifecycle

router = APIRouter(prefix="/sessions", tags=["Sessions"])


def get_lifecycle(request: Request) -> SessionLifecycle:
    """The lifecycle is built once in create_app and kept on app.state."""
    return request.app.state.lifecycle


def _to_http_error(exc: MeetSessionError) -> HTTPException:
    # `code` lets clients tell apart e.g. missing credentials, denied access and network trouble
    return HTTPException(status_code=exc.status_code, detail={"code": exc.code, "message": exc.message})


def _coordinate(body: LocationBody) -> Coordinate:
    return Coordinate(latitude=body.lat, longitude=body.lng)


@router.post("", response_model=SessionCreatedOut, status_code=201)
async def create_session(
    body: SessionCreate,
    lifecycle: SessionLifecycle = Depends(get_lifecycle),
) -> SessionCreatedOut:
    """Create a session from the sender's location and return its share link."""
    try:
        session = await lifecycle.create_session(
            _coordinate(body),
            body.category,
            mask_privacy=body.safe,
            flow=body.flow,
            recipient_hint=body.recipient_hint,
        )
    except MeetSessionError as e:
        raise _to_http_error(e)
    return SessionCreatedOut(session=session, share_url=lifecycle.share_url_for(session))


@router.get("/{session_id}", response_model=MeetSession)
async def get_session(session_id: str, lifecycle: SessionLifecycle = Depends(get_lifecycle)) -> MeetSession:
    try:
        return await lifecycle.get_session(session_id)
    except MeetSessionError as e:
        raise _to_http_error(e)


@router.post("/{session_id}/receiver", response_model=MeetSession)
async def post_receiver_location(
    session_id: str,
    body: ReceiverLocationBody,
    lifecycle: SessionLifecycle = Depends(get_lifecycle),
) -> MeetSession:
    """Invitee shares their location. Repeats after the first are ignored."""
    try:
        return await lifecycle.capture_receiver_location(session_id, _coordinate(body), invite_token=body.token)
    except MeetSessionError as e:
        raise _to_http_error(e)


@router.post("/{session_id}/search", response_model=MeetSession)
async def post_search(session_id: str, lifecycle: SessionLifecycle = Depends(get_lifecycle)) -> MeetSession:
    """Midpoint + candidate places. Either device may call it; the first write wins."""
    try:
        return await lifecycle.compute_midpoint_and_search(session_id)
    except MeetSessionError as e:
        raise _to_http_error(e)


@router.post("/{session_id}/propose", response_model=MeetSession)
async def post_propose(
    session_id: str,
    body: PlaceChoiceBody,
    lifecycle: SessionLifecycle = Depends(get_lifecycle),
) -> MeetSession:
    try:
        return await lifecycle.propose_place(session_id, body.place_id)
    except MeetSessionError as e:
        raise _to_http_error(e)


@router.post("/{session_id}/confirm", response_model=MeetSession)
async def post_confirm(session_id: str, lifecycle: SessionLifecycle = Depends(get_lifecycle)) -> MeetSession:
    try:
        return await lifecycle.confirm_proposal(session_id)
    except MeetSessionError as e:
        raise _to_http_error(e)


@router.post("/{session_id}/deny", response_model=MeetSession)
async def post_deny(session_id: str, lifecycle: SessionLifecycle = Depends(get_lifecycle)) -> MeetSession:
    try:
        return await lifecycle.deny_proposal(session_id)
    except MeetSessionError as e:
        raise _to_http_error(e)


@router.post("/{session_id}/select", response_model=MeetSession)
async def post_select(
    session_id: str,
    body: PlaceChoiceBody,
    lifecycle: SessionLifecycle = Depends(get_lifecycle),
) -> MeetSession:
    """Invite-flow pick, no negotiation."""
    try:
        return await lifecycle.select_place(session_id, body.place_id)
    except MeetSessionError as e:
        raise _to_http_error(e)


@router.get("/{session_id}/stream")
async def get_session_stream(session_id: str, lifecycle: SessionLifecycle = Depends(get_lifecycle)):
    """SSE: current snapshot, then a `session_updated` event per committed change."""
    try:
        current = await lifecycle.get_session(session_id)
    except MeetSessionError as e:
        raise _to_http_error(e)
    return StreamingResponse(
        stream_session_events(lifecycle.subscribe_to_changes, session_id, initial=current),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
