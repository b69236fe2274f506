from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from yarl import URL


class Settings(BaseSettings):
    """Settings for the clinic scheduling service."""

    HOST: str = "0.0.0.0"  # noqa: S104
    PORT: int = 8080

    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "clinic"
    DB_PASS: str = Field(default="clinic")
    DB_BASE: str = "clinic"
    DB_ECHO: bool = False
    DB_SQLITE_PATH: str | None = Field(
        default=None,
        description="Use a local SQLite file instead of PostgreSQL",
    )

    # Collaborators. An empty schedule/payment URL means in-process.
    SCHEDULE_SERVICE_URL: str | None = None
    PAYMENT_SERVICE_URL: str | None = None
    PATIENT_SERVICE_URL: str = "http://localhost:8081"
    SPECIALTY_SERVICE_URL: str = "http://localhost:8082"
    REMOTE_TIMEOUT_SECONDS: float = Field(
        default=5.0,
        gt=0,
        description="Upper bound for every call to a remote collaborator",
    )

    DEFAULT_SLOT_DURATION_MINUTES: int = Field(
        default=30,
        gt=0,
        description="Slot length used when a schedule does not specify one",
    )

    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    @property
    def db_url(self) -> URL:
        """
        Assemble database URL from settings.

        :return: database URL.
        """
        if self.DB_SQLITE_PATH:
            return URL(f"sqlite+aiosqlite:///{self.DB_SQLITE_PATH}")
        return URL.build(
            scheme="postgresql+asyncpg",
            host=self.DB_HOST,
            port=self.DB_PORT,
            user=self.DB_USER,
            password=self.DB_PASS,
            path=f"/{self.DB_BASE}",
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
