# config/settings.py
"""
╔════════════════════════════════════════════════════════════════════════════╗
║  DriftFix PRO - Settings v1.0                                             ║
║  ─────────────────────────────────────────────────────────────────────────  ║
║  ✓ Pydantic v2 Settings                                                  ║
║  ✓ Environment Variable & .env Support                                   ║
║  ✓ Validated Drift / Validation / Auto-Apply Thresholds                  ║
╚════════════════════════════════════════════════════════════════════════════╝

Architecture:
```
    Settings
    ├── Application (name, environment)
    ├── Logging (level, path, rotation, json sink)
    ├── Statistical Tests (bins, epsilon, alpha, min samples)
    ├── Drift Detection (PSI / score / concept thresholds)
    ├── Patch Generation (gate, ultra-aggressive trigger)
    ├── Validation (fast-track cutoffs, acceptance tiers)
    └── Orchestration (auto-apply bar, parallel workers)
```

Every numeric threshold is a configurable default. Override any of them
through the environment, e.g. ``PSI_SIGNIFICANT_THRESHOLD=0.2``.

Usage:
```python
    from config.settings import get_settings

    settings = get_settings()
    print(settings.PSI_SIGNIFICANT_THRESHOLD)
```

Dependencies:
    • pydantic
    • pydantic-settings
    • python-dotenv
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Union

from dotenv import load_dotenv
from pydantic import computed_field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ═══════════════════════════════════════════════════════════════════════════
# Module Metadata
# ═══════════════════════════════════════════════════════════════════════════

__version__ = "1.0.0"
__author__ = "DriftFix Team"

__all__ = ["Settings", "settings", "get_settings"]


# Load environment variables
load_dotenv()

# Project root directory
ROOT_DIR = Path(__file__).resolve().parent.parent


# ═══════════════════════════════════════════════════════════════════════════
# Settings Class
# ═══════════════════════════════════════════════════════════════════════════

class Settings(BaseSettings):
    """
    🔧 **Central Configuration**

    Type-safe configuration with Pydantic v2. Component dataclass configs
    (``DriftConfig``, ``PatchGeneratorConfig``, ``ValidationConfig``,
    ``OrchestratorConfig``) read their defaults from here.
    """

    # ───────────────────────────────────────────────────────────────────
    # Application
    # ───────────────────────────────────────────────────────────────────

    APP_NAME: str = "DriftFix PRO"
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"
    TEST_MODE: bool = False

    # ───────────────────────────────────────────────────────────────────
    # Logging
    # ───────────────────────────────────────────────────────────────────

    LOG_LEVEL: str = "INFO"
    LOGS_PATH: Path = ROOT_DIR / "logs"
    LOG_ROTATION: str = "10 MB"
    LOG_RETENTION: str = "30 days"
    LOG_JSON_ENABLED: bool = False
    LOG_CONSOLE_COMPACT: bool = False

    # ───────────────────────────────────────────────────────────────────
    # Statistical Tests
    # ───────────────────────────────────────────────────────────────────

    PSI_BINS: int = 10
    PSI_EPSILON: float = 1e-4
    KS_ALPHA: float = 0.05
    MIN_SAMPLES: int = 5

    # ───────────────────────────────────────────────────────────────────
    # Drift Detection
    # ───────────────────────────────────────────────────────────────────

    PSI_MODERATE_THRESHOLD: float = 0.10
    PSI_SIGNIFICANT_THRESHOLD: float = 0.25
    COVARIATE_SCORE_THRESHOLD: float = 0.25
    PRIOR_PSI_THRESHOLD: float = 0.25
    CONCEPT_SHIFT_DELTA: float = 0.20

    # ───────────────────────────────────────────────────────────────────
    # Patch Generation
    # ───────────────────────────────────────────────────────────────────

    PATCH_GENERATION_MIN_SCORE: float = 0.15
    ULTRA_AGGRESSIVE_TRIGGER: float = 0.30

    # ───────────────────────────────────────────────────────────────────
    # Validation
    # ───────────────────────────────────────────────────────────────────

    SMALL_DATASET_THRESHOLD: int = 100
    FAST_TRACK_MAX_SAMPLES: int = 30
    TIER_STANDARD_SAFETY: float = 0.25
    TIER_STANDARD_REDUCTION: float = 0.05
    TIER_MINIMAL_SAFETY: float = 0.15
    TIER_MINIMAL_REDUCTION: float = 0.02
    TIER_REJECT_SAFETY: float = 0.10

    # ───────────────────────────────────────────────────────────────────
    # Orchestration
    # ───────────────────────────────────────────────────────────────────

    AUTO_APPLY_SAFETY: float = 0.70
    VALIDATION_WORKERS: int = 4

    # ───────────────────────────────────────────────────────────────────
    # Pydantic Configuration
    # ───────────────────────────────────────────────────────────────────

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # ───────────────────────────────────────────────────────────────────
    # Computed Fields
    # ───────────────────────────────────────────────────────────────────

    @computed_field
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.ENVIRONMENT == "production"

    # ───────────────────────────────────────────────────────────────────
    # Field Validators
    # ───────────────────────────────────────────────────────────────────

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        normalized = (v or "").upper()

        if normalized not in allowed:
            raise ValueError(
                f"Invalid LOG_LEVEL '{v}'. "
                f"Allowed: {', '.join(sorted(allowed))}"
            )

        return normalized

    @field_validator("LOGS_PATH", mode="before")
    @classmethod
    def expand_path(cls, v: Union[Path, str]) -> Path:
        return Path(v).expanduser()

    @field_validator(
        "KS_ALPHA",
        "PSI_EPSILON",
        "COVARIATE_SCORE_THRESHOLD",
        "CONCEPT_SHIFT_DELTA",
        "PATCH_GENERATION_MIN_SCORE",
        "ULTRA_AGGRESSIVE_TRIGGER",
        "TIER_STANDARD_SAFETY",
        "TIER_STANDARD_REDUCTION",
        "TIER_MINIMAL_SAFETY",
        "TIER_MINIMAL_REDUCTION",
        "TIER_REJECT_SAFETY",
        "AUTO_APPLY_SAFETY",
    )
    @classmethod
    def validate_probability(cls, v: float) -> float:
        """Validate threshold values."""
        if not 0.0 <= v <= 1.0:
            raise ValueError("Threshold must be in range 0.0..1.0")
        return v

    @field_validator("PSI_BINS")
    @classmethod
    def validate_bins(cls, v: int) -> int:
        if v < 2:
            raise ValueError("PSI_BINS must be >= 2")
        return v

    @field_validator("MIN_SAMPLES", "FAST_TRACK_MAX_SAMPLES", "SMALL_DATASET_THRESHOLD", "VALIDATION_WORKERS")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be a positive integer")
        return v

    # ───────────────────────────────────────────────────────────────────
    # Model Validators
    # ───────────────────────────────────────────────────────────────────

    @model_validator(mode="after")
    def validate_configuration(self) -> "Settings":
        """Validate cross-field ordering of thresholds."""
        if self.PSI_MODERATE_THRESHOLD > self.PSI_SIGNIFICANT_THRESHOLD:
            raise ValueError(
                "PSI_MODERATE_THRESHOLD must not exceed PSI_SIGNIFICANT_THRESHOLD"
            )

        if self.TIER_MINIMAL_SAFETY > self.TIER_STANDARD_SAFETY:
            raise ValueError("TIER_MINIMAL_SAFETY must not exceed TIER_STANDARD_SAFETY")

        if self.TIER_REJECT_SAFETY > self.TIER_MINIMAL_SAFETY:
            raise ValueError("TIER_REJECT_SAFETY must not exceed TIER_MINIMAL_SAFETY")

        return self


# ═══════════════════════════════════════════════════════════════════════════
# Global Instance
# ═══════════════════════════════════════════════════════════════════════════

settings = Settings()


def get_settings() -> Settings:
    """
    📋 **Get Settings Instance**

    Returns the global settings instance.
    """
    return settings
