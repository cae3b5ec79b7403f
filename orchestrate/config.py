"""
Configuration loading for crawl runs and the scheduler.

Run configs and account files are JSON or YAML. Values from a run config
never override flags given explicitly on the command line.
"""

from __future__ import annotations

import argparse
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from band.errors import ConfigError

PROJECT_ROOT = Path(__file__).parent.parent
OUTPUT_DIR = PROJECT_ROOT / "output"
DEFAULT_RUN_CONFIG = PROJECT_ROOT / "profiles" / "run_config.yaml"

MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 1440
DEFAULT_INTERVAL_MINUTES = 10
DEFAULT_TARGET_POSTS = 50


def validate_interval(minutes: Any) -> int:
    """Polling interval in whole minutes, 1 to 1440 inclusive."""
    if isinstance(minutes, bool):
        raise ConfigError(f"crawl interval must be an integer, got {minutes!r}")
    try:
        value = int(minutes)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"crawl interval must be an integer, got {minutes!r}") from e
    if value != minutes and not (isinstance(minutes, str) and minutes.strip() == str(value)):
        raise ConfigError(f"crawl interval must be a whole number of minutes, got {minutes!r}")
    if not MIN_INTERVAL_MINUTES <= value <= MAX_INTERVAL_MINUTES:
        raise ConfigError(
            f"crawl interval must be between {MIN_INTERVAL_MINUTES} and {MAX_INTERVAL_MINUTES} minutes, got {value}"
        )
    return value


@dataclass
class SchedulerConfig:
    max_workers: int = 2                   # concurrent browser sessions
    run_timeout_seconds: float = 1800.0    # hard cap per crawl run
    default_target_posts: int = DEFAULT_TARGET_POSTS
    refresh_interval_minutes: int = 60     # reconcile against the account registry
    state_ttl_seconds: float = 24 * 3600   # how long finished run records are kept


@dataclass
class AccountConfig:
    """One storefront account on the platform."""
    account_id: str
    band_id: str
    login_id: str | None = None
    password: str | None = field(default=None, repr=False)
    auto_crawl: bool = False
    crawl_interval: int = DEFAULT_INTERVAL_MINUTES
    excluded_authors: list[str] = field(default_factory=list)
    target_posts: int | None = None
    access_token: str | None = field(default=None, repr=False)   # open API token for comments

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AccountConfig":
        if not isinstance(data, dict):
            raise ConfigError(f"account entry must be a mapping, got {type(data).__name__}")
        account_id = data.get("account_id") or data.get("id")
        band_id = data.get("band_id") or data.get("band_number")
        if not account_id or not band_id:
            raise ConfigError("account entry needs account_id and band_id")

        password = data.get("password")
        if not password and data.get("password_env"):
            password = os.environ.get(data["password_env"])
        token = data.get("access_token")
        if not token and data.get("access_token_env"):
            token = os.environ.get(data["access_token_env"])

        target = data.get("target_posts")
        return cls(
            account_id=str(account_id),
            band_id=str(band_id),
            login_id=data.get("login_id"),
            password=password,
            auto_crawl=bool(data.get("auto_crawl", False)),
            crawl_interval=validate_interval(data.get("crawl_interval", DEFAULT_INTERVAL_MINUTES)),
            excluded_authors=[str(a) for a in data.get("excluded_authors") or []],
            target_posts=int(target) if target else None,
            access_token=token,
        )


def _read_structured(path: Path) -> Any:
    content = path.read_text(encoding="utf-8").strip()
    if not content:
        return None
    if path.suffix.lower() in (".yaml", ".yml"):
        return yaml.safe_load(content)
    return json.loads(content)


def load_run_config(path: str) -> dict:
    """Load a run configuration from JSON or YAML."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Run config not found: {path}")
    result = _read_structured(p)
    if result and not isinstance(result, dict):
        raise ConfigError(f"run config {path} must be a mapping")
    return result if result else {}


def apply_run_config(
    args: argparse.Namespace,
    cfg: dict,
    provided_flags: set[str],
) -> argparse.Namespace:
    """Apply run config to args, respecting CLI overrides."""
    if not cfg:
        return args

    aliases = {
        "accounts_file": "accounts",
        "target": "target_posts",
        "workers": "max_workers",
        "timeout": "run_timeout",
        "cookies": "cookies_dir",
        "output": "output_dir",
    }

    applied_keys = getattr(args, "_run_config_keys", set())
    for key, value in cfg.items():
        arg_key = aliases.get(key, key)
        if arg_key not in args.__dict__:
            continue
        if arg_key in provided_flags:
            continue
        setattr(args, arg_key, value)
        applied_keys.add(arg_key)

    setattr(args, "_run_config_keys", applied_keys)
    return args


def provided_cli_flags(argv: list[str]) -> set[str]:
    return {a.split("=", 1)[0].lstrip("-").replace("-", "_") for a in argv if a.startswith("--")}


def load_accounts(path: str) -> list[AccountConfig]:
    """Accounts file: a list of account mappings, or ``{accounts: [...]}``."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Accounts file not found: {path}")
    raw = _read_structured(p) or []
    if isinstance(raw, dict):
        raw = raw.get("accounts") or []
    if not isinstance(raw, list):
        raise ConfigError(f"accounts file {path} must hold a list")

    accounts = []
    seen = set()
    for entry in raw:
        account = AccountConfig.from_dict(entry)
        if account.account_id in seen:
            raise ConfigError(f"duplicate account_id {account.account_id} in {path}")
        seen.add(account.account_id)
        accounts.append(account)
    return accounts
