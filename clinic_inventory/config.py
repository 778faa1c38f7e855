from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Clinic Inventory"
    DATABASE_URL: str = "sqlite:///./clinic_inventory.db"

    SECRET_KEY: str = "change-me-in-production"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 72
    DEFAULT_ADMIN_PASSWORD: str = "admin"

    LOG_LEVEL: str = "INFO"

    # Stock status boundaries, in percent of the baseline (strictly greater than)
    STATUS_GOOD_ABOVE_PERCENT: float = 70.0
    STATUS_LOW_ABOVE_PERCENT: float = 50.0

    # Movement recording
    MOVEMENT_MAX_RETRIES: int = 3
    IDEMPOTENCY_RETENTION_HOURS: int = 24

    # Department that fills transfer requests unless the request names another
    DEFAULT_SUPPLYING_DEPARTMENT: str = "CSR"

    model_config = {"env_file": ".env"}


settings = Settings()
