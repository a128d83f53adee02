"""
Configuration loading and management for the portfolio analytics engine.

This module handles loading engine settings from YAML files, API key
management for the price providers, and logging setup.
"""

import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import dotenv_values

from pms_engine.exceptions import ConfigurationError


# Default paths for configuration files
PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_ENV_FILE = PROJECT_ROOT / ".env"
DEFAULT_API_KEYS_FILE = PROJECT_ROOT / "config" / "api_keys.yaml"

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

TWR_FLOW_POLICIES = ("all_external", "contributions_only")


@dataclass
class EngineConfig:
    """
    Engine-wide numeric tolerances and runtime settings.

    Attributes:
        risk_free_rate: Annual risk-free rate used by the Sharpe ratio
        trading_days_per_year: Annualization factor for volatility and returns
        quantity_epsilon: Holdings at or below this quantity are dropped
        negligible_trade_value: Rebalancing trades below this value are dropped
        model_weight_tolerance: Allowed deviation of model weights from 1.0
        drift_threshold: Absolute drift above which an entry is flagged
        price_lookback_days: How far back the oracle looks for a close
        twr_flow_policy: "all_external" or "contributions_only"
        max_workers: Thread pool size for per-day valuations (1 = serial)
        cache_dir: Directory for the parquet price cache (None = no cache)
        decision_log_path: JSONL decision log path (None = no audit log)
        log_level: Root logging level
    """
    risk_free_rate: float = 0.02
    trading_days_per_year: int = 252
    quantity_epsilon: Decimal = Decimal("0.000001")
    negligible_trade_value: Decimal = Decimal("0.01")
    model_weight_tolerance: Decimal = Decimal("0.001")
    drift_threshold: Decimal = Decimal("0.005")
    price_lookback_days: int = 7
    twr_flow_policy: str = "all_external"
    max_workers: int = 1
    cache_dir: Optional[str] = None
    decision_log_path: Optional[str] = None
    log_level: str = "INFO"

    def to_dict(self) -> dict[str, Any]:
        return {
            "risk_free_rate": self.risk_free_rate,
            "trading_days_per_year": self.trading_days_per_year,
            "quantity_epsilon": str(self.quantity_epsilon),
            "negligible_trade_value": str(self.negligible_trade_value),
            "model_weight_tolerance": str(self.model_weight_tolerance),
            "drift_threshold": str(self.drift_threshold),
            "price_lookback_days": self.price_lookback_days,
            "twr_flow_policy": self.twr_flow_policy,
            "max_workers": self.max_workers,
            "cache_dir": self.cache_dir,
            "decision_log_path": self.decision_log_path,
            "log_level": self.log_level,
        }


def load_api_keys(
    env_file: str | Path | None = None,
    api_keys_file: str | Path | None = None,
) -> dict[str, str]:
    """
    Load API keys from multiple sources with priority.

    Sources are checked in this order (later sources override earlier):
    1. config/api_keys.yaml file
    2. .env file in project root
    3. Environment variables

    Args:
        env_file: Path to .env file (defaults to project root .env)
        api_keys_file: Path to api_keys.yaml (defaults to config/api_keys.yaml)

    Returns:
        Dictionary with API keys:
        - eodhd_api_key: EODHD API key (if available)
    """
    api_keys: dict[str, str] = {}

    # 1. Load from config/api_keys.yaml
    yaml_path = Path(api_keys_file) if api_keys_file else DEFAULT_API_KEYS_FILE
    if yaml_path.exists():
        try:
            with open(yaml_path, "r") as f:
                yaml_config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            raise ConfigurationError(f"Cannot read API keys file {yaml_path}: {e}")
        if isinstance(yaml_config, dict) and yaml_config.get("eodhd_api_key"):
            api_keys["eodhd_api_key"] = str(yaml_config["eodhd_api_key"])

    # 2. Load from .env file
    env_path = Path(env_file) if env_file else DEFAULT_ENV_FILE
    if env_path.exists():
        env_values = dotenv_values(env_path)
        if env_values.get("EODHD_API_KEY"):
            api_keys["eodhd_api_key"] = str(env_values["EODHD_API_KEY"])

    # 3. Override with environment variables (highest priority)
    if os.environ.get("EODHD_API_KEY"):
        api_keys["eodhd_api_key"] = os.environ["EODHD_API_KEY"]

    return api_keys


def get_eodhd_api_key(
    env_file: str | Path | None = None,
    api_keys_file: str | Path | None = None,
) -> str:
    """
    Get the EODHD API key from available configuration sources.

    Raises:
        ConfigurationError: If EODHD_API_KEY is not configured
    """
    api_keys = load_api_keys(env_file=env_file, api_keys_file=api_keys_file)
    if not api_keys.get("eodhd_api_key"):
        raise ConfigurationError(
            "EODHD API key is not configured. Please set it using one of:\n"
            "  1. Environment variable: export EODHD_API_KEY=your-key\n"
            "  2. .env file: EODHD_API_KEY=your-key\n"
            "  3. config/api_keys.yaml: eodhd_api_key: your-key"
        )
    return api_keys["eodhd_api_key"]


def load_engine_config(config_path: str | Path) -> EngineConfig:
    """
    Load engine configuration from a YAML file.

    Keys absent from the file keep their defaults.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        EngineConfig object with validated settings

    Raises:
        ConfigurationError: If the file cannot be loaded or is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigurationError("Configuration file must contain a mapping")

    return _parse_engine_config(raw_config)


def _parse_engine_config(raw: dict[str, Any]) -> EngineConfig:
    """
    Parse and validate raw configuration dictionary into EngineConfig.

    Raises:
        ConfigurationError: If a value is invalid or out of range
    """
    defaults = EngineConfig()

    unknown = set(raw) - set(defaults.to_dict())
    if unknown:
        raise ConfigurationError(
            f"Unknown configuration field(s): {', '.join(sorted(unknown))}"
        )

    risk_free_rate = float(_parse_decimal(
        raw.get("risk_free_rate", defaults.risk_free_rate),
        "risk_free_rate",
        min_val=Decimal("-1"),
        max_val=Decimal("1"),
    ))

    trading_days = _parse_int(
        raw.get("trading_days_per_year", defaults.trading_days_per_year),
        "trading_days_per_year",
        min_val=1,
    )

    quantity_epsilon = _parse_decimal(
        raw.get("quantity_epsilon", defaults.quantity_epsilon),
        "quantity_epsilon",
        min_val=Decimal("0"),
    )

    negligible_trade_value = _parse_decimal(
        raw.get("negligible_trade_value", defaults.negligible_trade_value),
        "negligible_trade_value",
        min_val=Decimal("0"),
    )

    model_weight_tolerance = _parse_decimal(
        raw.get("model_weight_tolerance", defaults.model_weight_tolerance),
        "model_weight_tolerance",
        min_val=Decimal("0"),
        max_val=Decimal("1"),
    )

    drift_threshold = _parse_decimal(
        raw.get("drift_threshold", defaults.drift_threshold),
        "drift_threshold",
        min_val=Decimal("0"),
        max_val=Decimal("1"),
    )

    lookback = _parse_int(
        raw.get("price_lookback_days", defaults.price_lookback_days),
        "price_lookback_days",
        min_val=0,
    )

    max_workers = _parse_int(
        raw.get("max_workers", defaults.max_workers),
        "max_workers",
        min_val=1,
    )

    twr_flow_policy = str(raw.get("twr_flow_policy", defaults.twr_flow_policy))
    if twr_flow_policy not in TWR_FLOW_POLICIES:
        raise ConfigurationError(
            f"twr_flow_policy must be one of {', '.join(TWR_FLOW_POLICIES)}, "
            f"got {twr_flow_policy}"
        )

    log_level = str(raw.get("log_level", defaults.log_level)).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigurationError(f"Invalid log_level: {log_level}")

    cache_dir = raw.get("cache_dir")
    decision_log_path = raw.get("decision_log_path")

    return EngineConfig(
        risk_free_rate=risk_free_rate,
        trading_days_per_year=trading_days,
        quantity_epsilon=quantity_epsilon,
        negligible_trade_value=negligible_trade_value,
        model_weight_tolerance=model_weight_tolerance,
        drift_threshold=drift_threshold,
        price_lookback_days=lookback,
        twr_flow_policy=twr_flow_policy,
        max_workers=max_workers,
        cache_dir=str(cache_dir) if cache_dir is not None else None,
        decision_log_path=str(decision_log_path) if decision_log_path is not None else None,
        log_level=log_level,
    )


def _parse_decimal(
    value: Any,
    field_name: str,
    min_val: Decimal | None = None,
    max_val: Decimal | None = None,
) -> Decimal:
    """
    Parse a decimal value with optional range validation.

    Args:
        value: The value to parse
        field_name: Name of the field for error messages
        min_val: Minimum allowed value (inclusive)
        max_val: Maximum allowed value (inclusive)

    Returns:
        Parsed Decimal

    Raises:
        ConfigurationError: If the value is invalid or out of range
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid decimal value for {field_name}: {value}")
    try:
        decimal_value = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ConfigurationError(f"Invalid decimal value for {field_name}: {value}")

    if not decimal_value.is_finite():
        raise ConfigurationError(f"Invalid decimal value for {field_name}: {value}")

    if min_val is not None and decimal_value < min_val:
        raise ConfigurationError(
            f"{field_name} must be >= {min_val}, got {decimal_value}"
        )

    if max_val is not None and decimal_value > max_val:
        raise ConfigurationError(
            f"{field_name} must be <= {max_val}, got {decimal_value}"
        )

    return decimal_value


def _parse_int(value: Any, field_name: str, min_val: int | None = None) -> int:
    """Parse an integer value with an optional lower bound."""
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ConfigurationError(f"Invalid integer value for {field_name}: {value}")
    try:
        int_value = int(value)
    except ValueError:
        raise ConfigurationError(f"Invalid integer value for {field_name}: {value}")

    if min_val is not None and int_value < min_val:
        raise ConfigurationError(
            f"{field_name} must be >= {min_val}, got {int_value}"
        )
    return int_value


def write_config(config: EngineConfig, output_path: str | Path) -> None:
    """
    Write an EngineConfig to a YAML file.

    Args:
        config: The configuration to write
        output_path: Path to write the YAML file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)


def configure_logging(level: str = "INFO", log_file: str | Path | None = None) -> None:
    """
    Install root logging handlers for an embedding application.

    Args:
        level: Logging level name
        log_file: Optional file to log to in addition to stderr
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
