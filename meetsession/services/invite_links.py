# Share links for sessions and the fire-and-forget invite dispatcher

import re
from abc import ABC, abstractmethod
from typing import Optional, Tuple
from urllib.parse import parse_qs, urlparse

from meetsession.core.logger import get_logger

logger = get_logger(__name__)

_TOKEN_PARAM = re.compile(r"([?&]token=)[^&#]*")


def session_url(base_url: str, session_id: str, token: str) -> str:
    """Two-party session link. Deep-link parsing on the clients expects exactly this shape."""
    return f"{base_url.rstrip('/')}/?sessionId={session_id}&token={token}"


def meet_point_url(base_url: str, meet_point_id: str) -> str:
    """Legacy ad-hoc invite link."""
    return f"{base_url.rstrip('/')}/?meetPointId={meet_point_id}"


def parse_invite_url(url: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Extract (session_id, token) from either link shape.
    Legacy meet-point links carry no token. Unrecognised links give (None, None).
    """
    query = parse_qs(urlparse(url).query)
    if "sessionId" in query:
        token = query.get("token", [None])[0]
        return query["sessionId"][0], token
    if "meetPointId" in query:
        return query["meetPointId"][0], None
    return None, None


def redact_invite_url(url: str) -> str:
    """Link safe to log: the invite token is replaced, everything else kept."""
    return _TOKEN_PARAM.sub(r"\1***", url)


class InviteDispatcher(ABC):
    """Hands a session link to the outside world (SMS, clipboard, share sheet)."""

    @abstractmethod
    async def dispatch(self, session_url: str, recipient_hint: Optional[str] = None) -> None:
        raise NotImplementedError


class LoggingInviteDispatcher(InviteDispatcher):
    """Default dispatcher: the client shares the link itself, the server only records it."""

    async def dispatch(self, session_url: str, recipient_hint: Optional[str] = None) -> None:
        logger.info("Invite link ready: url=%s recipient=%s", redact_invite_url(session_url), recipient_hint or "-")
