from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

DEFAULT_JWT_SECRET = "change-me"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables (or a .env file).

    MONGO_URI and JWT_SECRET must be supplied in any real deployment.
    """

    # ----------------- DATABASE -----------------
    mongo_uri: str = Field(default="mongodb://localhost:27017")
    db_name: str = Field(default="socialhub")

    # ----------------- TOKENS -----------------
    jwt_secret: str = Field(default=DEFAULT_JWT_SECRET)
    jwt_algorithm: str = Field(default="HS256")
    jwt_expires_minutes: int = Field(default=60, ge=1)

    # ----------------- UPLOADS -----------------
    upload_dir: str = Field(default="uploads")
    max_upload_size: int = Field(default=5 * 1024 * 1024, ge=1024)

    # ----------------- SERVER -----------------
    cors_origins: str = Field(default="*")
    log_level: str = Field(default="INFO")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    def validate_required_for_production(self) -> None:
        errors = []
        if not self.jwt_secret or self.jwt_secret == DEFAULT_JWT_SECRET:
            errors.append("JWT_SECRET is not set; tokens are signed with a development key")
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


settings = Settings()
