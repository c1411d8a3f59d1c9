"""Configuration management for Ledgerline.

Reads configuration from ~/.config/ledgerline.toml and creates default config if needed.
Policy constants (thresholds, chunk sizes, tolerances) live in their own
dataclasses so callers can tune them without touching the algorithms.
"""

from pathlib import Path
from dataclasses import dataclass, field, fields, asdict
from typing import List, Optional
import tomllib
import tomli_w


@dataclass
class RetryPolicy:
    """Retry and failover settings for the classification oracle."""

    max_attempts: int = 3  # per deployment
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    jitter: float = 0.25  # fraction of the delay added at random


@dataclass
class ClassificationPolicy:
    """Thresholds and sizes used by the batch categorizer."""

    chunk_size: int = 20
    auto_rule_threshold: float = 0.8
    scrutiny_threshold: float = 0.9
    fallback_confidence: float = 0.1
    max_bisect_depth: int = 4
    max_tokens_base: int = 200
    max_tokens_per_item: int = 80
    max_tokens_cap: int = 2400


@dataclass
class MatchingPolicy:
    """Heuristics for automatic and manual transfer matching."""

    base_currency: str = "USD"
    auto_max_days: int = 7
    auto_tolerance: float = 0.01
    auto_match_tolerance: float = 0.05
    fee_max_amount: float = 5.0
    fee_max_percentage: float = 0.003
    auto_confidence_floor: float = 0.4
    auto_confidence_ceiling: float = 0.99
    manual_max_days: int = 8
    manual_tolerance: float = 0.12
    manual_confidence_ceiling: float = 0.85
    same_account_max_days: int = 1
    same_account_tolerance: float = 0.01
    same_account_confidence_floor: float = 0.7


@dataclass
class Config:
    """Application configuration."""

    base_dir: Path
    db_data_dir: Path
    db_filename: str
    log_level: str
    log_dir: Path
    llm_enabled: bool = False
    llm_provider: Optional[str] = None
    llm_api_key: Optional[str] = None
    llm_endpoint: Optional[str] = None
    llm_api_version: Optional[str] = None
    llm_deployments: List[str] = field(default_factory=lambda: ["gpt-4o"])
    classification: ClassificationPolicy = field(default_factory=ClassificationPolicy)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    matching: MatchingPolicy = field(default_factory=MatchingPolicy)

    @property
    def db_path(self) -> Path:
        """Get the full database path (data_dir/filename)."""
        return self.db_data_dir / self.db_filename

    @classmethod
    def default(cls) -> "Config":
        """Create a Config with default values."""
        home = Path.home()
        base_dir = home / "data" / "ledgerline"
        return cls(
            base_dir=base_dir,
            db_data_dir=base_dir / "db",
            db_filename="ledgerline.db",
            log_level="INFO",
            log_dir=base_dir / "logs",
        )


def get_config_path() -> Path:
    """Get the path to the config file."""
    return Path.home() / ".config" / "ledgerline.toml"


def get_migrations_dir() -> Path:
    """Get the path to the migrations directory.

    This is always relative to the code location, not configurable.
    """
    return Path(__file__).parent / "db" / "migrations"


def _load_policy(policy_cls, data: dict):
    """Build a policy dataclass from a TOML table, ignoring unknown keys."""
    known = {f.name for f in fields(policy_cls)}
    return policy_cls(**{k: v for k, v in data.items() if k in known})


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file, creating default if it doesn't exist.

    Args:
        config_path: Optional override of the config file location.

    Returns:
        Config object with loaded or default values.
    """
    config_path = config_path or get_config_path()

    # If config doesn't exist, create it with defaults
    if not config_path.exists():
        config = Config.default()
        _write_config(config, config_path)
        return config

    # Load existing config
    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Parse with defaults for any missing values
    base_dir = Path(data.get("base_dir", Path.home() / "data" / "ledgerline"))

    db_config = data.get("database", {})
    db_data_dir = Path(db_config.get("data_dir", base_dir / "db"))
    db_filename = db_config.get("filename", "ledgerline.db")

    log_config = data.get("logging", {})
    log_level = log_config.get("level", "INFO")
    log_dir = Path(log_config.get("log_dir", base_dir / "logs"))

    llm_config = data.get("llm", {})
    classification_config = data.get("classification", {})

    return Config(
        base_dir=base_dir,
        db_data_dir=db_data_dir,
        db_filename=db_filename,
        log_level=log_level,
        log_dir=log_dir,
        llm_enabled=llm_config.get("enabled", False),
        llm_provider=llm_config.get("provider"),
        llm_api_key=llm_config.get("api_key"),
        llm_endpoint=llm_config.get("endpoint"),
        llm_api_version=llm_config.get("api_version"),
        llm_deployments=list(llm_config.get("deployments", ["gpt-4o"])),
        classification=_load_policy(ClassificationPolicy, classification_config),
        retry=_load_policy(RetryPolicy, classification_config.get("retry", {})),
        matching=_load_policy(MatchingPolicy, data.get("matching", {})),
    )


def _write_config(config: Config, config_path: Path) -> None:
    """Write config to the config file.

    Args:
        config: Config object to write.
        config_path: Destination file.
    """
    # Ensure config directory exists
    config_path.parent.mkdir(parents=True, exist_ok=True)

    llm = {
        "enabled": config.llm_enabled,
        "deployments": list(config.llm_deployments),
    }
    # TOML has no null, so unset optional values are left out
    for key, value in (
        ("provider", config.llm_provider),
        ("api_key", config.llm_api_key),
        ("endpoint", config.llm_endpoint),
        ("api_version", config.llm_api_version),
    ):
        if value is not None:
            llm[key] = value

    classification = asdict(config.classification)
    classification["retry"] = asdict(config.retry)

    # Convert config to TOML structure
    data = {
        "base_dir": str(config.base_dir),
        "database": {
            "data_dir": str(config.db_data_dir),
            "filename": config.db_filename,
        },
        "logging": {
            "level": config.log_level,
            "log_dir": str(config.log_dir),
        },
        "llm": llm,
        "classification": classification,
        "matching": asdict(config.matching),
    }

    # Write TOML file
    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)
