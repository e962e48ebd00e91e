"""Application configuration and settings."""

from typing import List, Literal, Optional, Union

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Service Configuration
    service_name: str = Field(default="collections-followup")
    service_version: str = Field(default="1.0.0")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    api_prefix: str = Field(default="/api/v1")

    # Persistence (unset: in-memory store)
    database_url: Optional[str] = Field(default=None)
    database_echo: bool = Field(default=False)

    # Follow-up Rules
    observation_max_length: int = Field(default=1200)
    unmatched_rule_policy: Literal["ignore", "reject"] = Field(default="ignore")
    strict_rule_ambiguity: bool = Field(default=False)

    # Authorization Queue Priority
    urgent_after_hours: float = Field(default=24.0)
    high_priority_after_hours: float = Field(default=8.0)

    # Development Settings
    enable_cors: bool = Field(default=True)
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"]
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    @field_validator("observation_max_length")
    @classmethod
    def validate_observation_length(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Observation max length must be positive")
        return v

    @model_validator(mode="after")
    def validate_priority_thresholds(self) -> "Settings":
        if self.high_priority_after_hours <= 0 or self.urgent_after_hours <= 0:
            raise ValueError("Priority thresholds must be positive")
        if self.high_priority_after_hours >= self.urgent_after_hours:
            raise ValueError("High priority threshold must be below the urgent threshold")
        return self

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }


# Create global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
