"""Runtime configuration for the pipeline, with environment overrides."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

DEFAULT_MODEL_NAME = "gemini-2.5-flash"

# Packages the preview sandbox can resolve without an install step.
DEFAULT_SANDBOX_PACKAGES = (
    "react",
    "react-dom",
    "lucide-react",
    "clsx",
)

TRUE_VALUES = {"1", "true", "yes", "y", "on"}


class RepairConfig(BaseModel):
    """Independent toggles for each auto-repair rewrite."""

    strip_runtime_generics: bool = True
    remove_diagnostics: bool = True
    synthesize_default_export: bool = True
    safe_interpolation: bool = True
    strip_sandbox_imports: bool = False
    dedupe_embedded: bool = True


class PipelineConfig(BaseModel):
    viability_threshold: int = Field(default=20, ge=1)
    # Inclusive: a validation score equal to the threshold passes.
    pass_threshold: float = Field(default=70.0, ge=0.0, le=100.0)
    strict: bool = False
    enable_validation: bool = True
    enable_optimization: bool = True
    optimization_categories: tuple[str, ...] = ("performance", "best-practice")
    max_output_tokens: int = Field(default=16000, gt=0)
    strict_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    open_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    timeout_seconds: float = Field(default=120.0, gt=0.0)
    model_name: str = DEFAULT_MODEL_NAME
    sandbox_packages: tuple[str, ...] = DEFAULT_SANDBOX_PACKAGES
    repair: RepairConfig = Field(default_factory=RepairConfig)

    @classmethod
    def from_env(cls, **overrides: object) -> PipelineConfig:
        """Build a config from ``CODEFORGE_*`` variables, then apply overrides.

        Recognized variables: ``CODEFORGE_MODEL``, ``CODEFORGE_TIMEOUT_S``,
        ``CODEFORGE_MAX_TOKENS``, ``CODEFORGE_PASS_THRESHOLD``,
        ``CODEFORGE_VIABILITY_THRESHOLD``, ``CODEFORGE_STRICT`` and
        ``CODEFORGE_OPTIMIZE``. Unset or blank variables keep the defaults.
        """
        values: dict[str, object] = {}
        env_map = {
            "CODEFORGE_MODEL": ("model_name", str),
            "CODEFORGE_TIMEOUT_S": ("timeout_seconds", float),
            "CODEFORGE_MAX_TOKENS": ("max_output_tokens", int),
            "CODEFORGE_PASS_THRESHOLD": ("pass_threshold", float),
            "CODEFORGE_VIABILITY_THRESHOLD": ("viability_threshold", int),
            "CODEFORGE_STRICT": ("strict", _as_bool),
            "CODEFORGE_OPTIMIZE": ("enable_optimization", _as_bool),
        }
        for env_name, (field_name, cast) in env_map.items():
            raw = (os.getenv(env_name) or "").strip()
            if raw:
                values[field_name] = cast(raw)
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(values)


def _as_bool(raw: str) -> bool:
    return raw.strip().lower() in TRUE_VALUES
