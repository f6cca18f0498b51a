"""Grading knobs resolved from configuration."""

from typing import Dict, Optional

from pydantic import BaseModel, Field

from stepgrade.libs.config_loader import ConfigType, get_config

DEFAULT_RUBRIC: Dict[str, float] = {"General Accuracy": 100}


class GradingSettings(BaseModel):
    """Tunable grading parameters. Defaults match config/default.yaml."""
    pass_threshold: float = Field(default=50, description="AI aggregate score needed to count as correct")
    allow_unit_fallback: bool = Field(
        default=True,
        description="Compare the raw value when a numerical answer's unit cannot be converted"
    )
    rejection_sentinel: str = Field(default="VALIDATION_FAILED")
    default_rubric: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_RUBRIC))
    spark_coin_rate: float = Field(default=0.5, description="Coins paid per earned mark on spark questions")

    @classmethod
    def from_config(cls, configs: Optional[ConfigType]) -> 'GradingSettings':
        """Build settings from the ``grading`` section of a config dict."""
        defaults = cls()
        if not configs:
            return defaults
        return cls(
            pass_threshold=get_config("grading.pass_threshold", configs, default=defaults.pass_threshold),
            allow_unit_fallback=get_config(
                "grading.allow_unit_fallback", configs, default=defaults.allow_unit_fallback
            ),
            rejection_sentinel=get_config(
                "grading.rejection_sentinel", configs, default=defaults.rejection_sentinel
            ),
            default_rubric=get_config("grading.default_rubric", configs, default=None) or defaults.default_rubric,
            spark_coin_rate=get_config(
                "grading.rewards.spark_coin_rate", configs, default=defaults.spark_coin_rate
            ),
        )
