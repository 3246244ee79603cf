# MeetSession row: one two-party meetup negotiation

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String
from sqlalchemy.sql import func

from meetsession.models.base import Base
from meetsession.schemas.session import SessionFlow, SessionStatus

# Stored as String(20); the app compares against SessionStatus values.
STATUS_DEFAULT = SessionStatus.CREATED.value


class MeetSessionRow(Base):
    """meet_sessions table. Coordinates are plain lat/lng float pairs."""

    __tablename__ = "meet_sessions"

    id = Column(String(36), primary_key=True)
    category = Column(String(50), nullable=False)
    flow = Column(String(10), nullable=False, default=SessionFlow.SESSION.value)
    status = Column(String(20), nullable=False, default=STATUS_DEFAULT, server_default=STATUS_DEFAULT, index=True)
    # Sender's precise position; masking happens at midpoint time, not here
    sender_lat = Column(Float, nullable=False)
    sender_lng = Column(Float, nullable=False)
    receiver_lat = Column(Float, nullable=True)
    receiver_lng = Column(Float, nullable=True)
    privacy_masked = Column(Boolean, nullable=False, default=False)
    midpoint_lat = Column(Float, nullable=True)
    midpoint_lng = Column(Float, nullable=True)
    midpoint_address = Column(String(300), nullable=True)  # reverse-geocoded label, best effort
    candidate_places = Column(JSON, nullable=False, default=list)  # ranked, replaced per search
    selected_place_id = Column(String(300), nullable=True)
    proposed_place_id = Column(String(300), nullable=True)
    confirmed_place_id = Column(String(300), nullable=True)
    search_radius_m = Column(Integer, nullable=False, default=5000)
    radius_expanded = Column(Boolean, nullable=False, default=False)
    invite_token = Column(String(64), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    # Optimistic concurrency: every write is conditioned on the version it read
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
