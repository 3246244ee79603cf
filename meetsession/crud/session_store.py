# Session store: insert / conditional update / read / subscribe over meet_sessions

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from meetsession.core.logger import get_logger
from meetsession.models.meet_session import MeetSessionRow
from meetsession.realtime.change_feed import OnUpdate, RedisChangeFeed, Subscription
from meetsession.schemas.session import Coordinate, MeetSession, Place, SessionFlow, SessionStatus
from meetsession.services.session_errors import SessionNotFound

logger = get_logger(__name__)

# Domain fields holding a Coordinate, and the column pair each one is stored in.
_COORDINATE_COLUMNS = {
    "sender_location": ("sender_lat", "sender_lng"),
    "receiver_location": ("receiver_lat", "receiver_lng"),
    "midpoint": ("midpoint_lat", "midpoint_lng"),
}
# Fields a patch may never touch.
_IMMUTABLE_FIELDS = {"id", "version", "created_at", "updated_at"}


class SessionStore(ABC):
    """Persistent, subscribable record store for meet sessions."""

    @abstractmethod
    async def insert(self, session: MeetSession) -> str:
        raise NotImplementedError

    @abstractmethod
    async def update_where(self, session_id: str, expected_version: int, patch: Dict[str, Any]) -> bool:
        """
        Apply `patch` only if the row is still at `expected_version`.
        Returns True on success, False when another writer got there first.
        """
        raise NotImplementedError

    @abstractmethod
    async def get_by_id(self, session_id: str) -> MeetSession:
        """Raises SessionNotFound."""
        raise NotImplementedError

    @abstractmethod
    def subscribe_to_changes(self, session_id: str, on_update: OnUpdate) -> Subscription:
        raise NotImplementedError


def _coordinate(lat: Optional[float], lng: Optional[float]) -> Optional[Coordinate]:
    if lat is None or lng is None:
        return None
    return Coordinate(latitude=lat, longitude=lng)


def _row_to_session(row: MeetSessionRow) -> MeetSession:
    return MeetSession(
        id=row.id,
        category=row.category,
        flow=SessionFlow(row.flow),
        status=SessionStatus(row.status),
        sender_location=Coordinate(latitude=row.sender_lat, longitude=row.sender_lng),
        receiver_location=_coordinate(row.receiver_lat, row.receiver_lng),
        privacy_masked=bool(row.privacy_masked),
        midpoint=_coordinate(row.midpoint_lat, row.midpoint_lng),
        midpoint_address=row.midpoint_address,
        candidate_places=[Place.model_validate(p) for p in (row.candidate_places or [])],
        selected_place_id=row.selected_place_id,
        proposed_place_id=row.proposed_place_id,
        confirmed_place_id=row.confirmed_place_id,
        search_radius_m=row.search_radius_m,
        radius_expanded=bool(row.radius_expanded),
        invite_token=row.invite_token,
        expires_at=row.expires_at,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_columns(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Domain field values -> column values (coordinates split, places serialised, enums unwrapped)."""
    values: Dict[str, Any] = {}
    for name, value in fields.items():
        if name in _COORDINATE_COLUMNS:
            lat_col, lng_col = _COORDINATE_COLUMNS[name]
            values[lat_col] = value.latitude if value is not None else None
            values[lng_col] = value.longitude if value is not None else None
        elif name == "candidate_places":
            values[name] = [p.model_dump(mode="json") for p in value]
        elif name in ("status", "flow"):
            values[name] = value.value if hasattr(value, "value") else value
        else:
            values[name] = value
    return values


class SqlSessionStore(SessionStore):
    """
    SQLAlchemy-backed store. Each call owns its own DB session and transaction.
    Committed writes are pushed to the change feed, when one is configured.
    """

    def __init__(
        self,
        session_factory: "sessionmaker[Session]",
        change_feed: Optional[RedisChangeFeed] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._session_factory = session_factory
        self._feed = change_feed
        self._clock = clock

    async def insert(self, session: MeetSession) -> str:
        now = self._clock()
        fields = {
            name: getattr(session, name) for name in MeetSession.model_fields if name not in _IMMUTABLE_FIELDS
        }
        fields["id"] = session.id
        row = MeetSessionRow(**_to_columns(fields), version=0, created_at=now, updated_at=now)
        with self._session_factory() as db:
            db.add(row)
            db.commit()
            db.refresh(row)
            stored = _row_to_session(row)
        await self._publish(stored)
        return stored.id

    async def update_where(self, session_id: str, expected_version: int, patch: Dict[str, Any]) -> bool:
        blocked = _IMMUTABLE_FIELDS.intersection(patch)
        if blocked:
            raise ValueError(f"Cannot patch immutable fields: {sorted(blocked)}")

        values = _to_columns(patch)
        values["version"] = expected_version + 1
        values["updated_at"] = self._clock()

        with self._session_factory() as db:
            result = db.execute(
                update(MeetSessionRow)
                .where(MeetSessionRow.id == session_id, MeetSessionRow.version == expected_version)
                .values(**values)
            )
            if result.rowcount != 1:
                db.rollback()
                logger.info("Conditional write lost: session=%s expected_version=%d", session_id, expected_version)
                return False
            db.commit()
            row = db.get(MeetSessionRow, session_id)
            stored = _row_to_session(row)
        await self._publish(stored)
        return True

    async def get_by_id(self, session_id: str) -> MeetSession:
        with self._session_factory() as db:
            row = db.get(MeetSessionRow, session_id)
            if row is None:
                raise SessionNotFound(session_id)
            return _row_to_session(row)

    def subscribe_to_changes(self, session_id: str, on_update: OnUpdate) -> Subscription:
        if self._feed is None:
            raise RuntimeError("No change feed configured for this store.")
        return self._feed.subscribe(session_id, on_update)

    async def _publish(self, session: MeetSession) -> None:
        if self._feed is not None:
            await self._feed.publish(session)
