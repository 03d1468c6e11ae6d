"""
Application configuration settings
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "Showcase Backend"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./showcase.db"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # File Upload
    MAX_FILE_SIZE: int = 10485760  # 10MB
    UPLOAD_DIR: str = "./uploads"
    UPLOAD_URL_PREFIX: str = "/uploads"
    ALLOWED_IMAGE_EXTENSIONS: List[str] = [".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp"]
    ALLOWED_IMAGE_TYPES: List[str] = [
        "image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp", "image/bmp"
    ]

    # Baidu image search
    BAIDU_APP_ID: Optional[str] = None
    BAIDU_API_KEY: Optional[str] = None
    BAIDU_SECRET_KEY: Optional[str] = None
    BAIDU_TOKEN_URL: str = "https://aip.baidubce.com/oauth/2.0/token"
    BAIDU_SIMILAR_ADD_URL: str = "https://aip.baidubce.com/rest/2.0/image-classify/v1/realtime_search/similar/add"
    BAIDU_SIMILAR_SEARCH_URL: str = "https://aip.baidubce.com/rest/2.0/image-classify/v1/realtime_search/similar/search"
    BAIDU_SIMILAR_DELETE_URL: str = "https://aip.baidubce.com/rest/2.0/image-classify/v1/realtime_search/similar/delete"
    BAIDU_REQUEST_TIMEOUT: float = 30.0
    BAIDU_TOKEN_DEFAULT_TTL: int = 2592000  # 30 days
    BAIDU_TOKEN_REFRESH_MARGIN: int = 3600
    BAIDU_MAX_PAGE_SIZE: int = 10

    class Config:
        env_file = ".env"
        case_sensitive = True


# Create settings instance
settings = Settings()
