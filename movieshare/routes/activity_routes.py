from fastapi import APIRouter, Depends
from movieshare.database import ensure_db
from movieshare.models.activity import ActivityLog
from movieshare.services.session_service import Session
from movieshare.utils.auth import get_current_session

router = APIRouter(prefix="/api/activity", tags=["Activity"], dependencies=[Depends(ensure_db)])

@router.get("/recent")
async def get_recent_activity(
    limit: int = 20,
    session: Session = Depends(get_current_session)
):
    """
    Fetch recent activity logs (sign-ins, uploads, downloads) for the user.
    """
    logs = await ActivityLog.find(
        {"userId": session.user_id}
    ).sort("-time").limit(limit).to_list()

    return {"activity": logs}
