"""Browser - context pool, sessions, stealth and guarded navigation"""

from .navigation import GuardedNavigator
from .pool import BrowserPool, PageLease, PooledContext
from .session_manager import (
    ChallengeResult,
    SessionManager,
    SessionMetadata,
    detect_cloudflare_block,
    detect_fingerprint_suspicion,
    handle_cloudflare_challenge,
)

__all__ = [
    'BrowserPool',
    'ChallengeResult',
    'GuardedNavigator',
    'PageLease',
    'PooledContext',
    'SessionManager',
    'SessionMetadata',
    'detect_cloudflare_block',
    'detect_fingerprint_suspicion',
    'handle_cloudflare_challenge',
]
