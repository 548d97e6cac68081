from motor.motor_asyncio import AsyncIOMotorClient
from beanie import init_beanie

from movieshare.config import settings
from movieshare.models.activity import ActivityLog
from movieshare.models.movie import Movie
from movieshare.models.user import User
from movieshare.utils.logger import logger

DOCUMENT_MODELS = [User, Movie, ActivityLog]

db_initialized = False


async def ensure_beanie_initialized():
    global db_initialized
    if db_initialized:
        return

    mongo_uri = settings.MONGODB_URI
    if not mongo_uri:
        logger.critical("MONGODB_URI not found")
        return

    try:
        client = AsyncIOMotorClient(mongo_uri)

        # Safely get database name
        try:
            db = client.get_default_database()
        except Exception:
            # No default db in URI (raises ConfigurationError)
            db = client[settings.MONGODB_DB]

        await init_beanie(database=db, document_models=DOCUMENT_MODELS)
        db_initialized = True
        logger.info("Beanie initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize Beanie: {e}")


async def ensure_db():
    """Router dependency; serverless cold starts may skip the lifespan hook."""
    await ensure_beanie_initialized()
