from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    MONGO_URI: str
    DB_NAME: str
    TOKEN_TTL_DAYS: int = 7  # magic links expire after a week
    TOKEN_MIN_LENGTH: int = 6
    AUTOSAVE_INTERVAL_SECONDS: float = 20.0
    SUBMISSION_FORMAT_VERSION: str = "1.0"
    LOG_LEVEL: str = "INFO"

    # Used by the patient-side client (auto-save, submission)
    API_BASE_URL: str = "http://localhost:8001"
    HTTP_TIMEOUT: float = 10.0

    class Config:
        env_file = ".env"


settings = Settings()
