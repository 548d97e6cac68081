import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from movieshare.config import settings
from movieshare import database
from movieshare.database import ensure_beanie_initialized
from movieshare.models.user import User
from movieshare.routes import activity_routes, auth_routes, cron_routes, movie_routes
from movieshare.services.cleanup_service import sweeper
from movieshare.utils.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    await ensure_beanie_initialized()
    if database.db_initialized:
        sweeper.start()
    yield
    sweeper.stop()


app = FastAPI(title="MovieShare Backend", version="1.0.0", lifespan=lifespan)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include Routers
app.include_router(auth_routes.router)
app.include_router(movie_routes.router)
app.include_router(activity_routes.router)
app.include_router(cron_routes.router)

# Local storage backend serves its objects directly
if settings.STORAGE_BACKEND == "local":
    os.makedirs(settings.STORAGE_LOCAL_DIR, exist_ok=True)
    app.mount(settings.STORAGE_PUBLIC_BASE_URL, StaticFiles(directory=settings.STORAGE_LOCAL_DIR), name="files")
    logger.info(f"Serving local storage from {settings.STORAGE_LOCAL_DIR} at {settings.STORAGE_PUBLIC_BASE_URL}")


@app.get("/health")
async def health_check():
    try:
        if not database.db_initialized:
            await ensure_beanie_initialized()

        # Try a simple query
        await User.count()
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)}"

    return {
        "status": "ok" if "error" not in db_status else "degraded",
        "message": "MovieShare Backend is running",
        "database": db_status,
        "initialized": database.db_initialized,
        "storage": settings.STORAGE_BACKEND,
    }


@app.get("/")
async def root():
    return {"message": "Welcome to MovieShare API"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=settings.PORT, reload=True)
