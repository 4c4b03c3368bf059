from typing import List
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "Blocks Blog API"
    DATABASE_URL: str = "sqlite:///./blog.db"
    SECRET_KEY: str = "supersecretkey_change_me_in_production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 # 1 day

    # Session cookie set by the JSON login endpoint
    AUTH_COOKIE_NAME: str = "token"
    AUTH_COOKIE_SECURE: bool = False

    # AWS S3
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "ap-south-1"
    S3_BUCKET: str = "blocks-blog-images"

    # Images
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
    DRAFT_RETENTION_DAYS: int = 7

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    @property
    def S3_BASE_URL(self) -> str:
        return f"https://{self.S3_BUCKET}.s3.{self.AWS_REGION}.amazonaws.com"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
