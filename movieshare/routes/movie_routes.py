"""
Movie Routes - catalog listing, uploads and downloads.
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from movieshare.database import ensure_db
from movieshare.errors import (
    AssetNotFoundError,
    MovieNotFoundError,
    NotSignedInError,
    StorageError,
    UploadError,
    UploadValidationError,
)
from movieshare.services.activity_service import record_activity
from movieshare.services.catalog_service import CatalogStore, get_catalog_store
from movieshare.services.catalog_view import CatalogView
from movieshare.services.session_service import Session, SessionManager
from movieshare.services.storage_service import ObjectStorage, get_object_storage
from movieshare.services.upload_service import (
    PendingUpload,
    UploadOrchestrator,
    upload_registry,
    validate_upload_file,
    validate_upload_form,
)
from movieshare.utils.auth import get_current_session, get_session_manager
from movieshare.utils.logger import logger
from movieshare.utils.notifications import error_detail, notification

router = APIRouter(prefix="/api", tags=["Movies"], dependencies=[Depends(ensure_db)])


def get_upload_orchestrator(
    store: CatalogStore = Depends(get_catalog_store),
    storage: ObjectStorage = Depends(get_object_storage),
) -> UploadOrchestrator:
    return UploadOrchestrator(store, storage)


@router.get("/movies")
async def list_movies(
    search: str = "",
    manager: SessionManager = Depends(get_session_manager),
    store: CatalogStore = Depends(get_catalog_store),
):
    """The full committed catalog, newest first, filtered by ``search``."""
    try:
        movies = await store.load()
    except Exception as e:
        logger.error(f"Error loading movies: {e}")
        raise HTTPException(status_code=502, detail=error_detail("Failed to load movies"))

    view = CatalogView(movies, can_download=manager.signed_in)
    return view.render(search)


@router.post("/movies")
async def upload_movie(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    manager: SessionManager = Depends(get_session_manager),
    orchestrator: UploadOrchestrator = Depends(get_upload_orchestrator),
):
    if not manager.signed_in:
        raise HTTPException(status_code=401, detail=error_detail("Please login to upload movies"))

    # Validation gate: reject before any collaborator call
    try:
        if file is None:
            raise UploadValidationError("Please fill all fields and select a file")
        validate_upload_file(file.filename, file.content_type, file.size)
        title, description = validate_upload_form(title, description)
    except UploadValidationError as e:
        raise HTTPException(status_code=400, detail=error_detail(e.message))

    pending = PendingUpload(
        filename=file.filename,
        content_type=file.content_type,
        size=file.size,
        stream=file.file,
        title=title,
        description=description,
    )
    user_id = manager.current.user_id

    try:
        movie = await orchestrator.upload(pending, manager.current)
    except NotSignedInError as e:
        raise HTTPException(status_code=401, detail=error_detail(e.message))
    except UploadError as e:
        await record_activity(user_id, f"Upload of '{title}' failed", type="error", meta={"step": e.step})
        raise HTTPException(status_code=502, detail=error_detail(e.message))

    await record_activity(user_id, f"Uploaded '{movie.title}'", type="success", meta={"movieId": str(movie.id)})

    return {
        "success": True,
        "movie": CatalogView([movie], can_download=True).render_card(movie),
        "notification": notification("Movie uploaded successfully!"),
    }


@router.post("/movies/{movie_id}/download")
async def download_movie(
    movie_id: str,
    manager: SessionManager = Depends(get_session_manager),
    store: CatalogStore = Depends(get_catalog_store),
    storage: ObjectStorage = Depends(get_object_storage),
):
    """Resolve a download URL for the movie and bump its download counter."""
    if not manager.signed_in:
        raise HTTPException(status_code=401, detail=error_detail("Please login to download movies"))

    user_id = manager.current.user_id
    try:
        movie = await store.get(movie_id)
        download_url = await storage.get_download_url(movie.file_path)
        await store.increment_download_count(movie)
    except (MovieNotFoundError, AssetNotFoundError) as e:
        await record_activity(user_id, "Download failed", type="error", meta={"movieId": movie_id})
        raise HTTPException(status_code=404, detail=error_detail(f"Download failed: {e.message}"))
    except StorageError as e:
        await record_activity(user_id, "Download failed", type="error", meta={"movieId": movie_id})
        raise HTTPException(status_code=502, detail=error_detail(f"Download failed: {e.message}"))
    except Exception as e:
        logger.error(f"Download error for {movie_id}: {e}")
        raise HTTPException(status_code=502, detail=error_detail(f"Download failed: {str(e)}"))

    await record_activity(user_id, f"Downloaded '{movie.title}'", type="success", meta={"movieId": movie_id})

    return {
        "downloadUrl": download_url,
        "filename": movie.filename,
        "notification": notification("Download started!"),
    }


@router.get("/uploads/active")
async def get_active_uploads(session: Session = Depends(get_current_session)):
    """Progress of the caller's in-flight uploads."""
    return {
        "uploads": [
            {
                "movieId": p.movie_id,
                "filename": p.filename,
                "step": p.step,
                "bytesTransferred": p.bytes_transferred,
                "totalBytes": p.total_bytes,
                "percent": p.percent,
            }
            for p in upload_registry.active(session.user_id)
        ]
    }
