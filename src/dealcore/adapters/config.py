# src/dealcore/adapters/config.py
import math
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    # App & logging
    ENV: str = Field(default="dev")
    LOG_LEVEL: str = Field(default="INFO")

    # persistence
    DB_URI: str = Field(default="sqlite:///dealcore.db")

    # Scoring configuration rules
    WEIGHT_SUM_TOLERANCE: float = Field(default=0.01)
    SCORE_HISTORY_LIMIT: int = Field(default=50)

    # -----------------------------
    # Portfolio analytics defaults
    # -----------------------------
    DEFAULT_RANKING_LIMIT: int = Field(default=10)
    RECENT_ACTIVITY_PER_KIND: int = Field(default=5)
    RECENT_ACTIVITY_LIMIT: int = Field(default=10)
    DASHBOARD_MAX_WORKERS: int = Field(default=4)

    model_config = SettingsConfigDict(
        env_prefix="DEALCORE_",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("WEIGHT_SUM_TOLERANCE", mode="before")
    @classmethod
    def _to_non_negative_fraction(cls, v: Any) -> Any:
        if v is None:
            return v
        percent = False
        if isinstance(v, str):
            v = v.strip()
            if v.endswith("%"):
                percent = True
                v = v[:-1].strip()
        try:
            f = float(v)
        except Exception as err:
            raise ValueError("tolerance must be numeric or percent-like") from err
        # "0.5%" is always a percent; bare numbers >= 1 are read as percents too
        if percent or f >= 1.0:
            f = f / 100.0
        if not math.isfinite(f) or f < 0:
            raise ValueError("tolerance must be a finite, non-negative number")
        return f

    @field_validator(
        "SCORE_HISTORY_LIMIT",
        "DEFAULT_RANKING_LIMIT",
        "RECENT_ACTIVITY_PER_KIND",
        "RECENT_ACTIVITY_LIMIT",
        "DASHBOARD_MAX_WORKERS",
        mode="before",
    )
    @classmethod
    def _positive_int(cls, v: Any) -> Any:
        n = int(v)
        if n <= 0:
            raise ValueError("limits and worker counts must be > 0")
        return n


config = AppConfig()
