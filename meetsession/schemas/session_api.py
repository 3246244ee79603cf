# Session API request/response schemas

from typing import Optional

from pydantic import BaseModel, Field

from meetsession.schemas.session import MeetSession, SessionFlow


class LocationBody(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class SessionCreate(LocationBody):
    """Session creation request. `safe` turns on sender coordinate masking."""

    category: str = Field(default="public", min_length=1, max_length=50)
    safe: bool = False
    flow: SessionFlow = SessionFlow.SESSION
    recipient_hint: Optional[str] = Field(default=None, max_length=100)


class ReceiverLocationBody(LocationBody):
    """Invitee location. `token` is the invite token from the shared link, when present."""

    token: Optional[str] = None


class PlaceChoiceBody(BaseModel):
    place_id: str = Field(..., min_length=1, max_length=300)


class SessionCreatedOut(BaseModel):
    session: MeetSession
    share_url: str
