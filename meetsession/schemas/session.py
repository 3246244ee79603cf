# Meet session domain types: coordinates, candidate places, the session aggregate

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SessionStatus(str, Enum):
    """Lifecycle states. No backward moves except PROPOSED -> CONNECTED on denial."""

    CREATED = "created"
    AWAITING_RECEIVER = "awaiting_receiver"
    CONNECTED = "connected"
    READY = "ready"
    PROPOSED = "proposed"
    CONFIRMED = "confirmed"


class SessionFlow(str, Enum):
    """SESSION: two-party propose/confirm. INVITE: legacy meet-point flow, select only."""

    SESSION = "session"
    INVITE = "invite"


class Coordinate(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


class Place(BaseModel):
    """Candidate venue annotated with its distance from the search center."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    address: str = ""
    location: Coordinate
    rating: float = Field(default=0.0, ge=0)  # 0 = unrated
    distance_km: float = Field(default=0.0, ge=0)
    provider_place_id: Optional[str] = None

    @property
    def unique_key(self) -> str:
        return self.provider_place_id or self.id


class MeetSession(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    category: str
    flow: SessionFlow = SessionFlow.SESSION
    status: SessionStatus = SessionStatus.CREATED
    sender_location: Coordinate
    receiver_location: Optional[Coordinate] = None
    privacy_masked: bool = False
    midpoint: Optional[Coordinate] = None
    midpoint_address: Optional[str] = None
    candidate_places: List[Place] = Field(default_factory=list)
    selected_place_id: Optional[str] = None
    proposed_place_id: Optional[str] = None
    confirmed_place_id: Optional[str] = None
    search_radius_m: int = 5000
    radius_expanded: bool = False
    invite_token: str = ""
    expires_at: Optional[datetime] = None
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def find_place(self, place_id: str) -> Optional[Place]:
        for place in self.candidate_places:
            if place.id == place_id or place.provider_place_id == place_id:
                return place
        return None
