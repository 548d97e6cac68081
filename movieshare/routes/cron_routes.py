"""
Cron Routes - Endpoints triggered by a scheduler (Vercel Cron or similar)
"""
from fastapi import APIRouter, Request, HTTPException

from movieshare.config import settings
from movieshare.database import ensure_beanie_initialized

router = APIRouter(prefix="/cron", tags=["Cron"])

def verify_cron_secret(request: Request):
    """Verify the request is from Vercel Cron or has valid secret."""
    # Vercel Cron Jobs include this header
    if request.headers.get("x-vercel-cron"):
        return True

    # Fallback: check for manual secret
    auth_header = request.headers.get("authorization")
    cron_secret = settings.CRON_SECRET
    if cron_secret and auth_header == f"Bearer {cron_secret}":
        return True

    return False

@router.post("/sweep-uploads")
@router.get("/sweep-uploads")  # GET also works for Vercel Cron
async def sweep_abandoned_uploads(request: Request):
    """
    Reclaim provisional uploads that never committed (orphaned assets + records).
    """
    if not verify_cron_secret(request):
        raise HTTPException(status_code=401, detail="Unauthorized")

    await ensure_beanie_initialized()

    from movieshare.services.cleanup_service import UploadSweeper
    reclaimed = await UploadSweeper().sweep()

    return {"status": "ok", "reclaimed": reclaimed, "message": "Upload sweep completed"}
