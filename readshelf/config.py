"""Configuration management."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config:
    """Application configuration."""
    
    # Database
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "readshelf")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")
    
    @property
    def DATABASE_URL(self):
        """Build PostgreSQL connection string."""
        return f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
    
    # API
    GOOGLE_BOOKS_API_KEY = os.getenv("GOOGLE_BOOKS_API_KEY")
    
    # Defaults
    DEFAULT_TIMEOUT = int(os.getenv("DEFAULT_TIMEOUT", "10"))
    DEFAULT_MAX_RETRIES = int(os.getenv("DEFAULT_MAX_RETRIES", "1"))
    
    # Search
    SEARCH_DEBOUNCE_MS = int(os.getenv("SEARCH_DEBOUNCE_MS", "300"))
    SEARCH_PAGE_SIZE = int(os.getenv("SEARCH_PAGE_SIZE", "20"))
    MIN_QUERY_LENGTH = int(os.getenv("MIN_QUERY_LENGTH", "2"))
    
    # The implicit single user
    ACTOR_ID = os.getenv("ACTOR_ID", "local")
    ACTOR_NAME = os.getenv("ACTOR_NAME", "Reader")
    
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    
    @property
    def SEARCH_DEBOUNCE_SECONDS(self) -> float:
        """Debounce window in seconds."""
        return self.SEARCH_DEBOUNCE_MS / 1000.0
