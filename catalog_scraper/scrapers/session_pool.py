"""Pool of crawl sessions (header identity plus cookie jar)."""

import itertools
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import structlog

from catalog_scraper.config import settings
from catalog_scraper.scrapers.utils.user_agents import build_browser_headers

logger = structlog.get_logger(__name__)

_session_ids = itertools.count(1)


@dataclass
class Session:
    """One simulated browser identity."""

    id: str
    headers: Dict[str, str] = field(default_factory=build_browser_headers)
    cookies: Dict[str, str] = field(default_factory=dict)
    usage_count: int = 0
    usable: bool = True

    def mark_bad(self) -> None:
        """Retire the session; it is never handed out again."""
        self.usable = False

    def update_cookies(self, cookies: Dict[str, str]) -> None:
        if cookies:
            self.cookies.update(cookies)


class SessionPool:
    """Hands out sessions and retires blocked or worn-out ones.

    Sessions are reused at random until they hit ``max_usage`` requests or
    are marked bad after a blocking response; the pool then creates a fresh
    identity in their place.
    """

    def __init__(self, max_pool_size: int = None, max_usage: int = None, proxy_manager=None):
        """Initialize the pool.

        Args:
            max_pool_size: Upper bound on live sessions
            max_usage: Requests per session before it is retired
            proxy_manager: Told to forget sticky proxies of retired sessions
        """
        self.max_pool_size = max_pool_size or settings.SESSION_POOL_SIZE
        self.max_usage = max_usage or settings.SESSION_MAX_USAGE
        self.proxy_manager = proxy_manager
        self.sessions: List[Session] = []
        self.retired_count = 0

    def get_session(self) -> Session:
        """Return a usable session, creating one when the pool has room."""
        self._retire_spent()

        if len(self.sessions) < self.max_pool_size:
            session = Session(id=f"session_{next(_session_ids)}")
            self.sessions.append(session)
        else:
            session = random.choice(self.sessions)

        session.usage_count += 1
        return session

    def get_by_id(self, session_id: str) -> Optional[Session]:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    def _retire_spent(self) -> None:
        keep = []
        for session in self.sessions:
            if session.usable and session.usage_count < self.max_usage:
                keep.append(session)
                continue
            self.retired_count += 1
            if self.proxy_manager is not None:
                self.proxy_manager.release_session(session.id)
            logger.debug(
                "session_retired",
                session_id=session.id,
                usage_count=session.usage_count,
                blocked=not session.usable,
            )
        self.sessions = keep

    def get_stats(self) -> dict:
        return {
            "live_sessions": len(self.sessions),
            "retired_sessions": self.retired_count,
        }
