"""
Meet session lifecycle: invite -> receiver location -> midpoint + place search ->
propose / confirm / deny, or a plain select for the legacy invite flow.

Every mutation reads the current record, validates the transition, computes the new
fields and writes them conditioned on the version it read. A lost race either turns
into a documented no-op or surfaces as StoreConflict; a stale status never
overwrites a newer one.
"""

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from meetsession.core.logger import get_logger
from meetsession.crud.session_store import SessionStore
from meetsession.integrations.places_provider import PlaceProvider, TransientError
from meetsession.realtime.change_feed import OnUpdate, SessionWatcher, Subscription
from meetsession.schemas.session import Coordinate, MeetSession, Place, SessionFlow, SessionStatus
from meetsession.services import session_status as ops
from meetsession.services.geo_math import compute_midpoint, is_valid_coordinate
from meetsession.services.invite_links import InviteDispatcher, meet_point_url, redact_invite_url, session_url
from meetsession.services.session_errors import (
    IllegalTransition,
    InvalidInviteToken,
    InvalidLocation,
    StoreConflict,
    UnknownPlace,
)

logger = get_logger(__name__)

DEFAULT_SEARCH_RADIUS_M = 5000
SESSION_PLACE_LIMIT = 3
INVITE_PLACE_LIMIT = 5
SESSION_TTL_DAYS = 7


def dedupe_places(places: Iterable[Place]) -> List[Place]:
    """Drop later entries sharing a uniqueness key; rank order is preserved."""
    seen = set()
    unique: List[Place] = []
    for place in places:
        if place.unique_key in seen:
            continue
        seen.add(place.unique_key)
        unique.append(place)
    return unique


def _require_valid(location: Coordinate, who: str) -> None:
    if not is_valid_coordinate(location):
        raise InvalidLocation(
            f"{who} location out of range: latitude={location.latitude}, longitude={location.longitude}"
        )


class SessionLifecycle:
    def __init__(
        self,
        store: SessionStore,
        places: PlaceProvider,
        dispatcher: Optional[InviteDispatcher] = None,
        *,
        web_base_url: str,
        default_radius_m: int = DEFAULT_SEARCH_RADIUS_M,
        session_place_limit: int = SESSION_PLACE_LIMIT,
        invite_place_limit: int = INVITE_PLACE_LIMIT,
        session_ttl: timedelta = timedelta(days=SESSION_TTL_DAYS),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._store = store
        self._places = places
        self._dispatcher = dispatcher
        self._web_base_url = web_base_url
        self._default_radius_m = default_radius_m
        self._limits = {
            SessionFlow.SESSION: session_place_limit,
            SessionFlow.INVITE: invite_place_limit,
        }
        self._session_ttl = session_ttl
        self._clock = clock

    @property
    def store(self) -> SessionStore:
        return self._store

    def share_url_for(self, session: MeetSession) -> str:
        if session.flow == SessionFlow.INVITE:
            return meet_point_url(self._web_base_url, session.id)
        return session_url(self._web_base_url, session.id, session.invite_token)

    async def get_session(self, session_id: str) -> MeetSession:
        return await self._store.get_by_id(session_id)

    async def create_session(
        self,
        sender_location: Coordinate,
        category: str,
        mask_privacy: bool = False,
        flow: SessionFlow = SessionFlow.SESSION,
        recipient_hint: Optional[str] = None,
    ) -> MeetSession:
        """Persist a new session, produce its share link and wait for the receiver."""
        _require_valid(sender_location, "Sender")

        session = MeetSession(
            id=str(uuid.uuid4()),
            category=category,
            flow=flow,
            status=SessionStatus.CREATED,
            sender_location=sender_location,
            privacy_masked=mask_privacy,
            search_radius_m=self._default_radius_m,
            invite_token=secrets.token_urlsafe(16),
            expires_at=self._clock() + self._session_ttl,
        )
        await self._store.insert(session)
        logger.info("Session created: id=%s category=%s flow=%s masked=%s", session.id, category, flow.value, mask_privacy)

        url = self.share_url_for(session)
        linked = await self._write(session, {"status": ops.check_transition(session.status, ops.OP_LINK_SENT)})
        await self._dispatch(url, recipient_hint)
        return linked

    async def capture_receiver_location(
        self,
        session_id: str,
        receiver_location: Coordinate,
        invite_token: Optional[str] = None,
    ) -> MeetSession:
        """
        Record the invitee's position once. Repeats after the session is connected are
        ignored and keep the first coordinate (retried network calls deliver duplicates).
        """
        _require_valid(receiver_location, "Receiver")
        current = await self._store.get_by_id(session_id)

        # bytes, not str: compare_digest rejects non-ASCII str with TypeError
        if invite_token is not None and not secrets.compare_digest(
            invite_token.encode("utf-8"), current.invite_token.encode("utf-8")
        ):
            raise InvalidInviteToken("Invite token does not match this session.")

        if ops.is_at_or_past(current.status, SessionStatus.CONNECTED):
            logger.info("Duplicate receiver location ignored: session=%s status=%s", session_id, current.status.value)
            return current

        new_status = ops.check_transition(current.status, ops.OP_CAPTURE_RECEIVER)
        patch = {"receiver_location": receiver_location, "status": new_status}
        if await self._store.update_where(session_id, current.version, patch):
            logger.info("Receiver connected: session=%s", session_id)
            return await self._store.get_by_id(session_id)

        latest = await self._store.get_by_id(session_id)
        if ops.is_at_or_past(latest.status, SessionStatus.CONNECTED):
            logger.info("Receiver location already captured concurrently: session=%s", session_id)
            return latest
        raise StoreConflict(f"Session {session_id} changed while capturing receiver location.")

    async def compute_midpoint_and_search(self, session_id: str) -> MeetSession:
        """
        Compute the midpoint from the stored locations, search for places (doubling the
        radius once if the first search comes back empty or fails transiently), then
        write midpoint, candidates and READY in one conditional write.

        Provider errors propagate and leave the session CONNECTED and unchanged.
        """
        current = await self._store.get_by_id(session_id)
        new_status = ops.check_transition(current.status, ops.OP_SEARCH)
        if current.receiver_location is None:
            raise IllegalTransition(current.status.value, ops.OP_SEARCH)

        midpoint = compute_midpoint(current.sender_location, current.receiver_location, current.privacy_masked)
        places, radius_m, expanded = await self._search_with_expansion(
            midpoint, current.category, current.search_radius_m, current.radius_expanded
        )
        midpoint_address = await self._places.reverse_geocode(midpoint)
        candidates = dedupe_places(places)[: self._limits[current.flow]]
        if not candidates:
            logger.warning(
                "No places found near midpoint even after expansion: session=%s radius=%d", session_id, radius_m
            )

        patch = {
            "midpoint": midpoint,
            "midpoint_address": midpoint_address,
            "candidate_places": candidates,
            "search_radius_m": radius_m,
            "radius_expanded": expanded,
            "selected_place_id": None,
            "status": new_status,
        }
        if await self._store.update_where(session_id, current.version, patch):
            logger.info("Session ready: session=%s candidates=%d radius=%d", session_id, len(candidates), radius_m)
            return await self._store.get_by_id(session_id)

        latest = await self._store.get_by_id(session_id)
        if latest.status != SessionStatus.CONNECTED:
            # the other device finished first; its result stands
            logger.info("Search result discarded, session already %s: session=%s", latest.status.value, session_id)
            return latest
        raise StoreConflict(f"Session {session_id} changed while searching for places.")

    async def propose_place(self, session_id: str, place_id: str) -> MeetSession:
        current = await self._store.get_by_id(session_id)
        new_status = ops.check_transition(current.status, ops.OP_PROPOSE)
        place = current.find_place(place_id)
        if place is None:
            raise UnknownPlace(place_id)
        updated = await self._write(current, {"proposed_place_id": place.id, "status": new_status})
        logger.info("Place proposed: session=%s place=%s", session_id, place.id)
        return updated

    async def confirm_proposal(self, session_id: str) -> MeetSession:
        current = await self._store.get_by_id(session_id)
        new_status = ops.check_transition(current.status, ops.OP_CONFIRM)
        updated = await self._write(
            current, {"confirmed_place_id": current.proposed_place_id, "status": new_status}
        )
        logger.info("Proposal confirmed: session=%s place=%s", session_id, current.proposed_place_id)
        return updated

    async def deny_proposal(self, session_id: str) -> MeetSession:
        current = await self._store.get_by_id(session_id)
        new_status = ops.check_transition(current.status, ops.OP_DENY)
        updated = await self._write(current, {"proposed_place_id": None, "status": new_status})
        logger.info("Proposal denied: session=%s place=%s", session_id, current.proposed_place_id)
        return updated

    async def select_place(self, session_id: str, place_id: str) -> MeetSession:
        """Non-negotiated pick used by the invite flow. No status change; may be repeated."""
        current = await self._store.get_by_id(session_id)
        if not current.candidate_places:
            raise IllegalTransition(current.status.value, ops.OP_SELECT)
        ops.check_transition(current.status, ops.OP_SELECT)
        place = current.find_place(place_id)
        if place is None:
            raise UnknownPlace(place_id)
        if current.selected_place_id == place.id:
            return current
        return await self._write(current, {"selected_place_id": place.id})

    def subscribe_to_changes(self, session_id: str, on_update: OnUpdate) -> Subscription:
        return self._store.subscribe_to_changes(session_id, on_update)

    def watcher(self) -> SessionWatcher:
        return SessionWatcher(self._store.subscribe_to_changes)

    async def _search_with_expansion(
        self, center: Coordinate, category: str, radius_m: int, expanded: bool
    ) -> Tuple[List[Place], int, bool]:
        try:
            places = await self._places.search(center, category, radius_m)
        except TransientError:
            if expanded:
                raise
            logger.warning("Place search failed transiently at radius=%d, retrying with expanded radius", radius_m)
            places = []

        if dedupe_places(places) or expanded:
            return places, radius_m, expanded

        radius_m *= 2
        logger.info("Expanding search radius to %d", radius_m)
        # a failure here propagates: the single retry is used up
        places = await self._places.search(center, category, radius_m)
        return places, radius_m, True

    async def _write(self, current: MeetSession, patch: Dict[str, Any]) -> MeetSession:
        if not await self._store.update_where(current.id, current.version, patch):
            raise StoreConflict(f"Session {current.id} changed since it was read; reload and retry.")
        return await self._store.get_by_id(current.id)

    async def _dispatch(self, url: str, recipient_hint: Optional[str]) -> None:
        if self._dispatcher is None:
            return
        try:
            await self._dispatcher.dispatch(url, recipient_hint)
        except Exception:
            logger.warning("Invite dispatch failed for %s", redact_invite_url(url), exc_info=True)
