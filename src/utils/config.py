"""Runtime settings read from environment variables."""

import os


class Settings:
    """Service settings, read once at import time."""

    ENVIRONMENT = os.environ.get("ENVIRONMENT", "development").lower()
    APP_NAME = os.environ.get("APP_NAME", "Activity Hub")

    SUPABASE_URL = os.environ.get("SUPABASE_URL")
    SUPABASE_SERVICE_ROLE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
    DOCUMENTS_TABLE = os.environ.get("DOCUMENTS_TABLE", "documents")
    BATCH_COMMIT_RPC = os.environ.get("BATCH_COMMIT_RPC", "commit_document_batch")

    # Hard cap on writes per atomic batch
    BATCH_WRITE_LIMIT = int(os.environ.get("BATCH_WRITE_LIMIT", "500"))
    EMPLOYEE_CANCEL_PAGE_SIZE = int(os.environ.get("EMPLOYEE_CANCEL_PAGE_SIZE", "250"))
    PHONE_CHANGE_PAGE_SIZE = int(os.environ.get("PHONE_CHANGE_PAGE_SIZE", "100"))
    MAX_CURSOR_PAGES = int(os.environ.get("MAX_CURSOR_PAGES", "1000"))

    DEFAULT_TIMEZONE = os.environ.get("DEFAULT_TIMEZONE", "Asia/Kolkata")

    GOOGLE_MAPS_API_KEY = os.environ.get("GOOGLE_MAPS_API_KEY")
    FCM_SERVER_KEY = os.environ.get("FCM_SERVER_KEY")
    HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "30"))

    # Shared secret sent by database webhooks in X-Webhook-Secret
    WEBHOOK_SECRET = os.environ.get("WEBHOOK_SECRET")

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT == "production"
