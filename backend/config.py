import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    # BOM store (SQLite)
    BOM_DB_PATH = os.getenv("BOM_DB_PATH", "./bom_engine.db")
    SQLITE_TIMEOUT = float(os.getenv("SQLITE_TIMEOUT", "30"))

    # Version allocation
    VERSION_ALLOCATION_RETRIES = int(os.getenv("VERSION_ALLOCATION_RETRIES", "3"))

    # Supabase (upstream materials/products catalog)
    SUPABASE_URL = os.getenv("SUPABASE_URL")
    SUPABASE_KEY = os.getenv("SUPABASE_KEY")

    # API Server
    API_HOST = os.getenv("API_HOST", "127.0.0.1")
    API_PORT = int(os.getenv("API_PORT", "8000"))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    @staticmethod
    def validate():
        """Ensure engine settings are usable"""
        problems = []
        if not Config.BOM_DB_PATH:
            problems.append("BOM_DB_PATH must not be empty")
        if Config.VERSION_ALLOCATION_RETRIES < 1:
            problems.append("VERSION_ALLOCATION_RETRIES must be at least 1")
        if Config.SQLITE_TIMEOUT <= 0:
            problems.append("SQLITE_TIMEOUT must be positive")

        if problems:
            raise EnvironmentError(f"Invalid configuration: {'; '.join(problems)}")

        return True

    @staticmethod
    def validate_supabase():
        """Ensure catalog sync credentials are present"""
        missing = []
        if not Config.SUPABASE_URL:
            missing.append("SUPABASE_URL")
        if not Config.SUPABASE_KEY:
            missing.append("SUPABASE_KEY")

        if missing:
            raise EnvironmentError(f"Missing required environment variables: {', '.join(missing)}")

        return True
