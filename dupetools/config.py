#!/usr/bin/env python3
"""
Centralized configuration for dupetools with env var overrides.
- User config file: ~/.config/dupetools/config.json
- Precedence: environment > user config file > built-in defaults
- Types exposed to the app:
  - LIBRARY_ROOTS: list[Path]
  - DB_PATH: Path
  - MATCH_PROFILE: str (built-in: balanced, strict, lenient; or a MATCH_PROFILES key)
  - MATCH_PROFILES: dict[str, dict] of overrides applied on top of "balanced"
  - SCAN_WORKERS: int (0 means one per CPU)
  - SCAN_BATCH_SIZE: int
  - USE_CANDIDATE_QUERY: bool
  - LOG_LEVEL: str
  - REPORT_OUTPUT_PATH_JSON: Path
"""
from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from rich.console import Console
from rich.prompt import Prompt

from .models import MatchConfig

CONFIG_DIR = Path.home() / ".config" / "dupetools"
CONFIG_FILE = CONFIG_DIR / "config.json"

console = Console()

DEFAULTS = {
    "LIBRARY_ROOTS": [],
    "DB_PATH": str(CONFIG_DIR / "catalog.db"),
    "MATCH_PROFILE": "balanced",
    "MATCH_PROFILES": {},
    "SCAN_WORKERS": 0,
    "SCAN_BATCH_SIZE": 500,
    "USE_CANDIDATE_QUERY": True,
    "LOG_LEVEL": "WARNING",
    "REPORT_OUTPUT_PATH_JSON": "duplicates.json",
}

ENV_MAP = {
    "LIBRARY_ROOTS": "DUPE_LIBRARY_ROOTS",  # comma-separated list
    "DB_PATH": "DUPE_DB_PATH",
    "MATCH_PROFILE": "DUPE_MATCH_PROFILE",
    "SCAN_WORKERS": "DUPE_SCAN_WORKERS",
    "SCAN_BATCH_SIZE": "DUPE_SCAN_BATCH_SIZE",
    "USE_CANDIDATE_QUERY": "DUPE_USE_CANDIDATE_QUERY",
    "LOG_LEVEL": "DUPE_LOG_LEVEL",
    "REPORT_OUTPUT_PATH_JSON": "DUPE_REPORT_OUTPUT_PATH_JSON",
}

BUILTIN_PROFILES: Dict[str, Callable[[], MatchConfig]] = {
    "balanced": MatchConfig.balanced,
    "strict": MatchConfig.strict,
    "lenient": MatchConfig.lenient,
}

INT_KEYS = ("SCAN_WORKERS", "SCAN_BATCH_SIZE")


def _parse_bool(val: Any) -> bool:
    if isinstance(val, bool):
        return val
    text = str(val).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Not a boolean: {val!r}")


def _is_interactive() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return sys.stdin is not None and sys.stdin.isatty()


def _create_config_interactively() -> Dict[str, Any]:
    if not _is_interactive():
        return DEFAULTS.copy()

    console.print("[bold yellow]Welcome to dupetools! First-time setup.[/bold yellow]")
    prompt_text = (
        "[bold green]Enter full path(s) to your music library[/bold green]\n"
        "[dim]Multiple paths allowed; separate by comma[/dim]"
    )
    paths_str = Prompt.ask(prompt_text, default="")
    data = DEFAULTS.copy()
    data["LIBRARY_ROOTS"] = [p.strip() for p in paths_str.split(",") if p.strip()]
    data["MATCH_PROFILE"] = Prompt.ask(
        "[bold green]Default matching profile[/bold green]",
        choices=sorted(BUILTIN_PROFILES),
        default="balanced",
    )
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    with open(CONFIG_FILE, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    console.print(f"[bold green]Configuration saved to {CONFIG_FILE}[/bold green]")
    return data


def _load_user_file(path: Optional[Path] = None) -> Dict[str, Any]:
    path = path or CONFIG_FILE
    if not path.exists():
        if path == CONFIG_FILE:
            return _create_config_interactively()
        return DEFAULTS.copy()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[yellow]Ignoring unreadable config file {path}: {e}[/yellow]")
        data = {}
    for k, v in DEFAULTS.items():
        data.setdefault(k, v)
    return data


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(cfg)
    for key, env_name in ENV_MAP.items():
        val = os.getenv(env_name)
        if val is None:
            continue
        if key == "LIBRARY_ROOTS":
            out[key] = [s for s in (v.strip() for v in val.split(",")) if s]
        elif key in INT_KEYS:
            try:
                out[key] = int(val)
            except ValueError:
                pass  # ignore bad env and keep existing
        elif key == "USE_CANDIDATE_QUERY":
            try:
                out[key] = _parse_bool(val)
            except ValueError:
                pass
        else:
            out[key] = val
    return out


def _coerce_types(eff: Dict[str, Any]) -> Dict[str, Any]:
    eff["LIBRARY_ROOTS"] = [Path(p).expanduser() for p in eff.get("LIBRARY_ROOTS", [])]
    eff["DB_PATH"] = Path(eff["DB_PATH"]).expanduser()
    eff["REPORT_OUTPUT_PATH_JSON"] = Path(str(eff["REPORT_OUTPUT_PATH_JSON"])).expanduser()
    for k in INT_KEYS:
        try:
            eff[k] = max(0, int(eff[k]))
        except (TypeError, ValueError):
            eff[k] = DEFAULTS[k]
    if not eff["SCAN_BATCH_SIZE"]:
        eff["SCAN_BATCH_SIZE"] = DEFAULTS["SCAN_BATCH_SIZE"]
    try:
        eff["USE_CANDIDATE_QUERY"] = _parse_bool(eff["USE_CANDIDATE_QUERY"])
    except ValueError:
        eff["USE_CANDIDATE_QUERY"] = DEFAULTS["USE_CANDIDATE_QUERY"]
    eff["LOG_LEVEL"] = str(eff.get("LOG_LEVEL") or DEFAULTS["LOG_LEVEL"]).upper()
    if not isinstance(eff.get("MATCH_PROFILES"), dict):
        eff["MATCH_PROFILES"] = {}
    return eff


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load effective config: env > file > defaults, coerced to expected types."""
    file_cfg = _load_user_file(path)
    merged = DEFAULTS | file_cfg
    merged = _apply_env_overrides(merged)
    return _coerce_types(merged)


def profile_names(cfg: Optional[Dict[str, Any]] = None) -> list[str]:
    cfg = cfg if cfg is not None else config
    return sorted(set(BUILTIN_PROFILES) | set(cfg.get("MATCH_PROFILES", {})))


def get_match_config(name: Optional[str] = None, cfg: Optional[Dict[str, Any]] = None) -> MatchConfig:
    """Resolve a profile name to a MatchConfig.

    Custom profiles from MATCH_PROFILES are overrides on top of "balanced"; a
    custom profile may shadow a built-in one.
    """
    cfg = cfg if cfg is not None else config
    name = name or cfg.get("MATCH_PROFILE") or "balanced"
    custom = cfg.get("MATCH_PROFILES", {})
    if name in custom:
        overrides = dict(custom[name])
        overrides.setdefault("name", name)
        return MatchConfig.from_dict(overrides)
    if name in BUILTIN_PROFILES:
        return BUILTIN_PROFILES[name]()
    raise ValueError(f"Unknown match profile '{name}'. Available: {', '.join(profile_names(cfg))}")


# Exposed module-level config used by the CLI
config = load_config()
