"""Settings for ForecastLab, merged from ~/.forecastlab/config.yaml and .env.

String values may reference environment variables as ${NAME}; these are
substituted before validation. Every section is a Pydantic model, so an
out-of-range value stops the program at startup instead of mid-backtest.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)

HOME_ENV_VAR = "FORECASTLAB_HOME"
DEFAULT_HOME = Path.home() / ".forecastlab"

_ENV_REF = re.compile(r"\$\{(\w+)\}")


def _substitute(match: re.Match) -> str:
    name = match.group(1)
    if name not in os.environ:
        logger.warning("Config references unset environment variable %s", name)
        return match.group(0)
    return os.environ[name]


def _resolve_env_vars(value: Any) -> Any:
    """Substitute ${NAME} references anywhere inside a parsed YAML tree."""
    if isinstance(value, str):
        return _ENV_REF.sub(_substitute, value)
    if isinstance(value, list):
        return [_resolve_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {key: _resolve_env_vars(v) for key, v in value.items()}
    return value


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

class BacktestConfig(BaseModel):
    history_days: int = Field(default=30, ge=1)
    default_step_days: int = Field(default=7, ge=1)
    default_days_to_predict: int = Field(default=1, ge=1)
    max_step_days: int = Field(default=30, ge=1)
    max_days_to_predict: int = Field(default=30, ge=1)
    max_concurrency: int = Field(default=4, ge=1)
    # Pause after each trial to stay under upstream rate limits
    trial_delay_seconds: float = Field(default=0.0, ge=0.0)

    @model_validator(mode="after")
    def _defaults_within_limits(self) -> BacktestConfig:
        if self.default_step_days > self.max_step_days:
            raise ValueError("default_step_days exceeds max_step_days")
        if self.default_days_to_predict > self.max_days_to_predict:
            raise ValueError("default_days_to_predict exceeds max_days_to_predict")
        return self


class IndicatorConfig(BaseModel):
    sma_windows: list[int] = Field(default_factory=lambda: [7, 30])
    ema_windows: list[int] = Field(default_factory=lambda: [12])
    rsi_window: int = Field(default=14, ge=1)


class MarketDataConfig(BaseModel):
    provider: str = "coingecko"
    base_url: str = "https://api.coingecko.com/api/v3"
    api_key: str = ""  # optional demo key
    # Extra symbol -> provider id mappings, merged over the built-in ones
    asset_ids: dict[str, str] = Field(default_factory=dict)


class AIProviderConfig(BaseModel):
    api_key: str = ""
    model: str = ""  # empty means the provider's default
    base_url: str = ""
    max_tokens: int = Field(default=4096, ge=1)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)


class AIConfig(BaseModel):
    default_provider: str = "gemini"
    # Unparsable model output fails the trial instead of using the indicator fallback
    strict_parsing: bool = True
    providers: dict[str, AIProviderConfig] = Field(default_factory=dict)

    def active(self) -> AIProviderConfig | None:
        return self.providers.get(self.default_provider)


class LoggingConfig(BaseModel):
    level: str = "INFO"


class AppConfig(BaseModel):
    home_dir: str = str(DEFAULT_HOME)
    backtest: BacktestConfig = Field(default_factory=BacktestConfig)
    indicators: IndicatorConfig = Field(default_factory=IndicatorConfig)
    market_data: MarketDataConfig = Field(default_factory=MarketDataConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def home_path(self) -> Path:
        return Path(self.home_dir).expanduser()


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def resolve_home() -> Path:
    """$FORECASTLAB_HOME if set, otherwise ~/.forecastlab."""
    return Path(os.environ.get(HOME_ENV_VAR, str(DEFAULT_HOME))).expanduser()


def _read_yaml(path: Path) -> dict:
    if not path.exists():
        logger.warning("Config file %s not found, falling back to defaults", path)
        return {}
    with path.open() as fh:
        data = yaml.safe_load(fh)
    logger.info("Read config from %s", path)
    return data or {}


def load_config(
    config_path: str | Path | None = None,
    env_path: str | Path | None = None,
) -> AppConfig:
    """Build the AppConfig.

    The .env file is loaded first so that ${NAME} references in the YAML
    can point at secrets kept there. Paths default to the home directory.
    """
    home = resolve_home()
    env_file = Path(env_path) if env_path is not None else home / ".env"
    config_file = Path(config_path) if config_path is not None else home / "config.yaml"

    if env_file.exists():
        load_dotenv(env_file)
        logger.info("Read environment from %s", env_file)
    else:
        logger.debug("Skipping missing env file %s", env_file)

    settings = _resolve_env_vars(_read_yaml(config_file))
    if HOME_ENV_VAR in os.environ:
        settings["home_dir"] = str(home)

    return AppConfig(**settings)
