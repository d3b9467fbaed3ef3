from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "duplex-triage-engine"
    ENVIRONMENT: str = "local"
    LOG_LEVEL: str = "INFO"

    # Database (investigation state)
    POSTGRES_HOST: str = "db"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "duplex"
    POSTGRES_USER: str = "duplex_user"
    POSTGRES_PASSWORD: str = "duplex_password"

    # Full SQLAlchemy URL override, e.g. "sqlite:///duplex.db"
    DB_URL: str | None = None

    # Detection thresholds
    RECOVERY_WINDOW_MINUTES: int = 30
    TRAVEL_MIN_DISTANCE_KM: float = 250.0
    TRAVEL_MIN_SPEED_KPH: float = 1000.0
    NEW_ACCOUNT_DAYS: int = 180
    SUPPRESSION_HOURS: int = 24

    # Severity weights per detector kind
    WEIGHT_FRAUD_REPORT: int = 100
    WEIGHT_IMPOSSIBLE_TRAVEL: int = 10
    WEIGHT_DMP_FAILURE: int = 2
    WEIGHT_FAILURE_WITHOUT_RECOVERY: int = 1

    # Pipeline
    EVALUATION_CONCURRENCY: int = 8
    FETCH_ATTEMPTS: int = 3
    FETCH_BASE_DELAY: float = 0.5

    # Institutional VPN egress addresses; their geolocation says nothing
    # about where the user actually is.
    VPN_IPS: list[str] = ["130.127.255.220", "130.127.255.222", "0.0.0.0"]

    # Construct SQLAlchemy URL
    @property
    def DATABASE_URL(self) -> str:
        if self.DB_URL:
            return self.DB_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:"
            f"{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
