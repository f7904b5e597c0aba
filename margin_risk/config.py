"""
Engine configuration - design constants for simulation, sweep and metrics
"""

import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "MARGIN_RISK_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "engine.yaml"


@dataclass(frozen=True)
class SimulationConfig:
    watch_buffer_pct: float = 15.0
    no_debt_risk_ratio: float = 999.0
    default_shock_asset: str = "SUI"


@dataclass(frozen=True)
class SweepConfig:
    min_pct: int = -50
    max_pct: int = 20
    step_pct: int = 2
    cliff_min_multiplier: float = 2.0
    cliff_min_debt_usd: float = 100.0

    @property
    def shock_steps(self) -> range:
        """Inclusive range of shock percentages visited by a sweep"""
        return range(self.min_pct, self.max_pct + 1, self.step_pct)


@dataclass(frozen=True)
class EstimateConfig:
    min_net_exposure_usd: float = 0.01


@dataclass(frozen=True)
class LoaderConfig:
    default_liquidation_threshold: float = 1.05
    user_liquidation_reward: float = 0.02
    pool_liquidation_reward: float = 0.01


@dataclass(frozen=True)
class MetricsConfig:
    at_risk_buffer: float = 0.20
    heatmap_bins: int = 20


@dataclass(frozen=True)
class CacheConfig:
    max_entries: int = 256


@dataclass(frozen=True)
class EngineConfig:
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    sweep: SweepConfig = field(default_factory=SweepConfig)
    estimate: EstimateConfig = field(default_factory=EstimateConfig)
    loader: LoaderConfig = field(default_factory=LoaderConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)


DEFAULT_CONFIG = EngineConfig()


def _number(section: str, raw: Dict[str, Any], key: str, default, cast=float):
    value = raw.get(key, default)
    try:
        value = cast(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{section}.{key} must be numeric, got {value!r}")
    if not math.isfinite(value):
        raise ConfigError(f"{section}.{key} must be finite, got {value!r}")
    return value


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    return section


def _build_simulation(raw: Dict[str, Any]) -> SimulationConfig:
    d = SimulationConfig()
    return SimulationConfig(
        watch_buffer_pct=_number("simulation", raw, "watch_buffer_pct", d.watch_buffer_pct),
        no_debt_risk_ratio=_number("simulation", raw, "no_debt_risk_ratio", d.no_debt_risk_ratio),
        default_shock_asset=str(raw.get("default_shock_asset", d.default_shock_asset)),
    )


def _build_sweep(raw: Dict[str, Any]) -> SweepConfig:
    d = SweepConfig()
    sweep = SweepConfig(
        min_pct=_number("sweep", raw, "min_pct", d.min_pct, int),
        max_pct=_number("sweep", raw, "max_pct", d.max_pct, int),
        step_pct=_number("sweep", raw, "step_pct", d.step_pct, int),
        cliff_min_multiplier=_number("sweep", raw, "cliff_min_multiplier", d.cliff_min_multiplier),
        cliff_min_debt_usd=_number("sweep", raw, "cliff_min_debt_usd", d.cliff_min_debt_usd),
    )
    if sweep.step_pct <= 0:
        raise ConfigError(f"sweep.step_pct must be positive, got {sweep.step_pct}")
    if sweep.min_pct > sweep.max_pct:
        raise ConfigError(
            f"sweep.min_pct ({sweep.min_pct}) must not exceed sweep.max_pct ({sweep.max_pct})"
        )
    return sweep


def _build_loader(raw: Dict[str, Any]) -> LoaderConfig:
    d = LoaderConfig()
    loader = LoaderConfig(
        default_liquidation_threshold=_number(
            "loader", raw, "default_liquidation_threshold", d.default_liquidation_threshold
        ),
        user_liquidation_reward=_number("loader", raw, "user_liquidation_reward", d.user_liquidation_reward),
        pool_liquidation_reward=_number("loader", raw, "pool_liquidation_reward", d.pool_liquidation_reward),
    )
    if loader.default_liquidation_threshold <= 0:
        raise ConfigError("loader.default_liquidation_threshold must be positive")
    return loader


def _build_metrics(raw: Dict[str, Any]) -> MetricsConfig:
    d = MetricsConfig()
    metrics = MetricsConfig(
        at_risk_buffer=_number("metrics", raw, "at_risk_buffer", d.at_risk_buffer),
        heatmap_bins=_number("metrics", raw, "heatmap_bins", d.heatmap_bins, int),
    )
    if metrics.heatmap_bins <= 0:
        raise ConfigError("metrics.heatmap_bins must be positive")
    return metrics


def build_config(raw: Optional[Dict[str, Any]]) -> EngineConfig:
    """
    Build an EngineConfig from a parsed YAML mapping

    Missing sections and keys fall back to the defaults.

    Args:
        raw: Mapping as returned by yaml.safe_load (None for an empty file)

    Returns:
        EngineConfig
    """
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ConfigError("Top level of the engine config must be a mapping")

    cache = CacheConfig(
        max_entries=_number("cache", _section(raw, "cache"), "max_entries", CacheConfig.max_entries, int)
    )
    if cache.max_entries <= 0:
        raise ConfigError("cache.max_entries must be positive")

    return EngineConfig(
        simulation=_build_simulation(_section(raw, "simulation")),
        sweep=_build_sweep(_section(raw, "sweep")),
        estimate=EstimateConfig(
            min_net_exposure_usd=_number(
                "estimate", _section(raw, "estimate"), "min_net_exposure_usd",
                EstimateConfig.min_net_exposure_usd,
            )
        ),
        loader=_build_loader(_section(raw, "loader")),
        metrics=_build_metrics(_section(raw, "metrics")),
        cache=cache,
    )


def load_config(config_path: Optional[Union[str, Path]] = None) -> EngineConfig:
    """
    Load engine configuration from YAML

    Resolution order: explicit path, then the MARGIN_RISK_CONFIG environment
    variable (a .env file is honoured), then the engine.yaml shipped with
    the package.

    Args:
        config_path: Optional path to a YAML file

    Returns:
        EngineConfig (defaults if the file does not exist)
    """
    load_dotenv()

    if config_path is None:
        config_path = os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    if not config_path.exists():
        logger.warning(f"Engine config not found: {config_path}, using defaults")
        return DEFAULT_CONFIG

    with open(config_path, "r") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Could not parse {config_path}: {e}") from e

    config = build_config(raw)
    logger.info(f"Loaded engine config from {config_path}")
    return config
