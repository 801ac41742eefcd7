#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Session Management with Preemptive Rotation

Tracks usage and challenge counters per browsing identity and decides when
an identity should be retired, before (request count) or after (challenges)
the target site notices it. Also hosts the page-level challenge detectors
and the Cloudflare JS-challenge wait.

Usage:
    sessions = SessionManager()
    session_id = sessions.create_session()

    sessions.record_request(session_id)
    challenge = await detect_fingerprint_suspicion(page)
    if challenge.is_challenged:
        sessions.record_challenge(session_id)
    if sessions.should_rotate(session_id):
        ...
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional

from playwright.async_api import Error as PlaywrightError

from ..config.timeouts import TimeoutConfig

logger = logging.getLogger(__name__)

PREEMPTIVE_ROTATION_THRESHOLD = 100
CHALLENGE_ROTATION_THRESHOLD = 2
DEFAULT_MAX_SESSION_AGE = 60 * 60

CHALLENGE_PATTERNS = (
    ("cf-challenge", "cloudflare_challenge"),
    ("captcha", "captcha"),
    ("recaptcha", "recaptcha"),
    ("hcaptcha", "hcaptcha"),
    ("please verify", "verification"),
    ("unusual traffic", "traffic_detection"),
    ("are you human", "human_check"),
    ("bot detection", "bot_detection"),
    ("access denied", "access_denied"),
    ("403 forbidden", "forbidden"),
)

CLOUDFLARE_BLOCK_MARKERS = ("1020", "cf_challenge", "cloudflare", "Checking your browser")


@dataclass
class SessionMetadata:
    """Counters for one browsing identity."""
    id: str
    created_at: float
    request_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    challenge_count: int = 0
    last_challenge_at: Optional[float] = None


@dataclass
class ChallengeResult:
    is_challenged: bool
    challenge_type: Optional[str] = None


class SessionManager:
    """
    Per-session counters and rotation decisions.

    Counter updates and reads go through one lock. The cleanup sweep
    snapshots expired ids under the lock and deletes them afterwards, so
    concurrent should_rotate() calls never see a half-iterated map.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._sessions: Dict[str, SessionMetadata] = {}
        self._lock = threading.Lock()

    def create_session(self) -> str:
        session_id = str(uuid.uuid4())
        with self._lock:
            self._sessions[session_id] = SessionMetadata(id=session_id, created_at=self._clock())
        return session_id

    def get_session(self, session_id: str) -> Optional[SessionMetadata]:
        """Copy of the session's counters, or None."""
        with self._lock:
            session = self._sessions.get(session_id)
            return replace(session) if session else None

    def delete_session(self, session_id: str):
        with self._lock:
            self._sessions.pop(session_id, None)

    def record_request(self, session_id: str):
        with self._lock:
            session = self._sessions.get(session_id)
            if session:
                session.request_count += 1

    def record_success(self, session_id: str):
        with self._lock:
            session = self._sessions.get(session_id)
            if session:
                session.success_count += 1

    def record_failure(self, session_id: str):
        with self._lock:
            session = self._sessions.get(session_id)
            if session:
                session.failure_count += 1

    def record_challenge(self, session_id: str):
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return
            session.challenge_count += 1
            session.last_challenge_at = self._clock()
            count = session.challenge_count
        logger.warning(f"Challenge detected for session {session_id} (challenges={count})")

    def should_rotate(self, session_id: str) -> bool:
        """
        True when the session is unknown, has served enough requests to be
        retired preemptively, or has hit too many challenges.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return True
            requests = session.request_count
            challenges = session.challenge_count

        if requests >= PREEMPTIVE_ROTATION_THRESHOLD:
            logger.info(f"Preemptive session rotation: {session_id} after {requests} requests")
            return True
        if challenges >= CHALLENGE_ROTATION_THRESHOLD:
            logger.info(f"Session rotation due to challenges: {session_id} ({challenges})")
            return True
        return False

    def cleanup_old_sessions(self, max_age: float = DEFAULT_MAX_SESSION_AGE) -> int:
        """
        Drop sessions older than max_age seconds.

        Returns:
            Number of sessions removed
        """
        now = self._clock()
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if now - s.created_at > max_age]

        cleaned = 0
        for session_id in expired:
            with self._lock:
                if self._sessions.pop(session_id, None) is not None:
                    cleaned += 1

        if cleaned:
            logger.info(f"Cleaned up {cleaned} old session(s)")
        return cleaned

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            sessions = list(self._sessions.values())
            return {
                "total_sessions": len(sessions),
                "total_requests": sum(s.request_count for s in sessions),
                "total_challenges": sum(s.challenge_count for s in sessions),
            }

    def reset(self):
        with self._lock:
            self._sessions.clear()


async def detect_fingerprint_suspicion(page) -> ChallengeResult:
    """Classify a challenge from the page URL or content."""
    url = page.url or ""
    if "challenge" in url or "captcha" in url:
        return ChallengeResult(True, "url_challenge")

    try:
        content = (await page.content()).lower()
    except PlaywrightError:
        # Page closed or mid-navigation
        return ChallengeResult(False)

    for pattern, challenge_type in CHALLENGE_PATTERNS:
        if pattern in content:
            return ChallengeResult(True, challenge_type)
    return ChallengeResult(False)


async def handle_cloudflare_challenge(page, timeout: float = TimeoutConfig.CHALLENGE_TIMEOUT) -> bool:
    """
    Wait for a Cloudflare JS challenge to settle and check for clearance.

    Returns:
        True when a cf_clearance cookie is present afterwards
    """
    try:
        await page.wait_for_load_state("networkidle", timeout=TimeoutConfig.ms(timeout))
        cookies = await page.context.cookies()
    except PlaywrightError as e:
        logger.warning(f"Cloudflare challenge handling failed: {e}")
        return False

    if any(cookie.get("name") == "cf_clearance" for cookie in cookies):
        logger.info("Cloudflare challenge passed")
        return True
    return False


async def detect_cloudflare_block(page) -> bool:
    try:
        content = await page.content()
    except PlaywrightError:
        return False
    return any(marker in content for marker in CLOUDFLARE_BLOCK_MARKERS)
