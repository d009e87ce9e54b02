from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Incident Desk Ticketing API"
    DATABASE_URL: str = "sqlite:///./data/incidents.db"
    DB_TIMEOUT_SECONDS: int = 5
    LOG_LEVEL: str = "INFO"
    DATA_DIR: Path = Path("data")
    DEFAULT_BUILDING_CODE: str = "LOS5"
    STATS_MAX_WORKERS: int = 8

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def tickets_csv_path(self) -> Path:
        return self.DATA_DIR / "tickets.csv"

    @property
    def history_csv_path(self) -> Path:
        return self.DATA_DIR / "ticket_history.csv"

    @property
    def uploads_dir(self) -> Path:
        return self.DATA_DIR / "uploads"


settings = Settings()
