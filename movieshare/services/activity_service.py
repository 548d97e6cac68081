import logging
from typing import Optional

from movieshare.models.activity import ActivityLog
from movieshare.services.session_service import Session

logger = logging.getLogger("activity")


async def record_activity(user_id: str, title: str, type: str = "info", meta: Optional[dict] = None):
    """Persist a terminal outcome. Failures here never break the calling operation."""
    try:
        await ActivityLog(user_id=user_id, title=title, type=type, meta=meta).insert()
    except Exception as e:
        logger.error(f"Failed to record activity '{title}' for {user_id}: {e}")


class SessionActivityRecorder:
    """Session subscriber that logs sign-in and sign-out transitions."""

    def __init__(self):
        self.last: Optional[Session] = None
        self._primed = False

    async def __call__(self, session: Optional[Session]):
        previous, self.last = self.last, session
        if not self._primed:
            # Initial delivery on subscribe is the current state, not a transition
            self._primed = True
            return

        if session and (not previous or previous.user_id != session.user_id):
            await record_activity(session.user_id, "Signed in", type="success")
        elif not session and previous:
            await record_activity(previous.user_id, "Signed out", type="info")
