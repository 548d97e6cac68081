import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Runtime configuration read from the environment (and .env)."""

    def __init__(self):
        # --- Database ---
        self.MONGODB_URI = os.getenv("MONGODB_URI")
        self.MONGODB_DB = os.getenv("MONGODB_DB", "movieshare")

        # --- Sessions ---
        self.SESSION_SECRET = os.getenv("SESSION_SECRET")
        self.SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", 7 * 24 * 3600))

        # --- Object storage ---
        self.STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local").lower()
        self.STORAGE_LOCAL_DIR = os.getenv("STORAGE_LOCAL_DIR", os.path.join(os.getcwd(), "uploads"))
        self.STORAGE_PUBLIC_BASE_URL = os.getenv("STORAGE_PUBLIC_BASE_URL", "/files")
        self.AZURE_STORAGE_CONNECTION_STRING = os.getenv("AZURE_STORAGE_CONNECTION_STRING")
        self.AZURE_STORAGE_CONTAINER_NAME = os.getenv("AZURE_STORAGE_CONTAINER_NAME", "movies")

        # --- Upload pipeline ---
        self.SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", 600))
        self.PENDING_UPLOAD_MAX_AGE_SECONDS = int(os.getenv("PENDING_UPLOAD_MAX_AGE_SECONDS", 6 * 3600))

        # --- HTTP ---
        self.CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")
        self.CRON_SECRET = os.getenv("CRON_SECRET", "")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.PORT = int(os.getenv("PORT", 3000))


settings = Settings()
