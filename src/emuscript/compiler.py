# src/emuscript/compiler.py
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .analyze import analyze_script
from .config import with_defaults
from .errors import Diagnostics, ScriptLoadError
from .lexer import parse_sections
from .process import build_timeline
from .selection import SelectionState, apply_selection
from .timeline import Composition, Timeline

DEFAULT_DOCUMENT = """\
[composition]
title: "Untitled"
by: "Someone"
time: 4/4
BPM: 120
transposition: 0
playlist: intro

[instruments]
synth: "MIDI Input", channel=1, octave=3, velocity=80

[intro]
synth: 1 2 3 4 | 5 6 7 1'
"""

@dataclass(frozen=True)
class CompileResult:
    composition: Composition
    timeline: Timeline
    diagnostics: Diagnostics
    selection: SelectionState

    @property
    def ok(self) -> bool:
        return not self.diagnostics.has_blocking()

def compile(text: str, prior_selection: Optional[SelectionState] = None,
            cfg: Optional[Dict[str, Any]] = None) -> CompileResult:
    """
    Full rebuild: text -> sections -> score model -> timeline.

    Never raises on document errors; everything lands in `diagnostics`.
    `prior_selection` is merged back by name and position, the merged state
    is returned for the caller to keep.
    """
    cfg = with_defaults(cfg)
    sections, diags = parse_sections(text)
    composition = analyze_script(sections, cfg, diags)
    selection = apply_selection(composition, prior_selection)
    timeline = build_timeline(composition, None, cfg)
    return CompileResult(composition, timeline, diags, selection)

def load_text(path) -> str:
    p = Path(path)
    try:
        return p.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ScriptLoadError(f"Cannot open file: '{p}'", str(p)) from e
    except (OSError, UnicodeDecodeError) as e:
        raise ScriptLoadError(f"Cannot read '{p}' as UTF-8 text: {e}", str(p)) from e
