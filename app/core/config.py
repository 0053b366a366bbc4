from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    # bcrypt cost for user and paste passwords
    bcrypt_rounds: int = 12

    allow_guest_pastes: bool = True
    max_pastes_per_user: int = Field(1000, ge=1, le=100_000)

    # expired paste cleanup
    cleanup_enabled: bool = True
    cleanup_interval_seconds: int = 600
    cleanup_batch_size: int = 100

    # admin statistics are recomputed at most this often
    stats_cache_ttl_seconds: int = 60

    log_level: str = "INFO"
    sql_echo: bool = False

    model_config = {"env_file": ".env", "extra": "ignore"}

settings = Settings()
