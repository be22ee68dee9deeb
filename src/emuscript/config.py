# src/emuscript/config.py
from __future__ import annotations
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional
import copy
import yaml

# Paket-Root: .../src/emuscript
PKG_ROOT = Path(__file__).resolve().parent
DEFAULT_CFG_PATH = PKG_ROOT / "config.default.yaml"
USER_CFG_PATH = Path.home() / ".config" / "emuscript" / "config.yaml"

def _safe_load(path: Path) -> Dict[str, Any]:
    try:
        if path.exists():
            return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError):
        # lieber leer zurückgeben als den Compiler zu blockieren
        pass
    return {}

def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(a)
    for k, v in (b or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out

def _ensure_minimal(cfg: Dict[str, Any]) -> Dict[str, Any]:
    cfg.setdefault("ticks_per_beat", 960)
    d = cfg.setdefault("defaults", {})
    d.setdefault("step_velocity", 80)
    inst = d.setdefault("instrument", {})
    inst.setdefault("endpoint", "MIDI Input")
    inst.setdefault("velocity", 100)
    snd = d.setdefault("sound", {})
    for k, v in (("volume", 100), ("step", 6), ("duration", 6), ("msec", 10), ("vdec", 3)):
        snd.setdefault(k, v)
    cfg.setdefault("strum", {}).setdefault("velocity_floor", 20)
    cfg.setdefault("sequences", {}).setdefault("max_depth", 8)
    return cfg

def load_config(
    user_path: Optional[Path] = None,
    default_path: Optional[Path] = None,
) -> Dict[str, Any]:
    """
    Packaged defaults merged with the user's overrides. Missing or broken
    files count as empty.
    """
    dpath = Path(default_path) if default_path else DEFAULT_CFG_PATH
    upath = Path(user_path) if user_path else USER_CFG_PATH

    defaults = _safe_load(dpath)
    user = _safe_load(upath)
    return _ensure_minimal(_deep_merge(defaults, user))

@lru_cache(maxsize=1)
def _packaged_defaults() -> Dict[str, Any]:
    return _ensure_minimal(_safe_load(DEFAULT_CFG_PATH))

def default_config() -> Dict[str, Any]:
    """Packaged defaults only (no user file)."""
    return copy.deepcopy(_packaged_defaults())

def with_defaults(cfg: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Partial config (e.g. only `strum`) completed from the packaged defaults."""
    if not cfg:
        return default_config()
    return _ensure_minimal(_deep_merge(_packaged_defaults(), cfg))

def get_ticks_per_beat(cfg: Dict[str, Any]) -> int:
    try:
        return int(cfg.get("ticks_per_beat", 960))
    except (TypeError, ValueError):
        return 960

def get_sound_defaults(cfg: Dict[str, Any]) -> Dict[str, int]:
    return dict(_ensure_minimal(copy.deepcopy(cfg))["defaults"]["sound"])
