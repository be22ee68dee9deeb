# src/emuscript/selection.py
"""
Caller-owned enable/disable state of instruments and playlist items.

After every compile the previous state is restored positionally: entry i keeps
its flag only if the freshly compiled entry i has the same name.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
import yaml

from .timeline import Composition

Entry = Tuple[str, bool]

@dataclass(frozen=True)
class SelectionState:
    instruments: Tuple[Entry, ...] = ()
    playlist: Tuple[Entry, ...] = ()

    def with_instrument(self, name: str, selected: bool) -> "SelectionState":
        return SelectionState(
            instruments=tuple((n, selected if n == name else s) for n, s in self.instruments),
            playlist=self.playlist,
        )

    def with_playlist_item(self, index: int, selected: bool) -> "SelectionState":
        return SelectionState(
            instruments=self.instruments,
            playlist=tuple((n, selected if i == index else s) for i, (n, s) in enumerate(self.playlist)),
        )

def merge(names: Sequence[str], prior: Sequence[Entry]) -> Tuple[Entry, ...]:
    out: List[Entry] = []
    for i, name in enumerate(names):
        selected = True
        if i < len(prior) and prior[i][0] == name:
            selected = bool(prior[i][1])
        out.append((name, selected))
    return tuple(out)

def snapshot(comp: Composition) -> SelectionState:
    return SelectionState(
        instruments=tuple((i.name, i.selected) for i in comp.instruments),
        playlist=tuple((p.name, p.selected) for p in comp.playlist),
    )

def apply_selection(comp: Composition, prior: Optional[SelectionState]) -> SelectionState:
    """Restore `prior` onto a freshly compiled composition; returns the merged state."""
    if prior is None:
        return snapshot(comp)
    instruments = merge([i.name for i in comp.instruments], prior.instruments)
    playlist = merge([p.name for p in comp.playlist], prior.playlist)
    for inst, (_, sel) in zip(comp.instruments, instruments):
        inst.selected = sel
    for item, (_, sel) in zip(comp.playlist, playlist):
        item.selected = sel
    return SelectionState(instruments, playlist)

# ---------------- persistence ----------------

def _entries(raw) -> Tuple[Entry, ...]:
    out: List[Entry] = []
    for item in raw or []:
        if isinstance(item, dict) and "name" in item:
            out.append((str(item["name"]), bool(item.get("selected", True))))
    return tuple(out)

def load_selection(path: Path) -> SelectionState:
    """Missing or broken file -> empty state (everything enabled)."""
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) if path.exists() else {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError):
        data = {}
    if not isinstance(data, dict):
        data = {}
    return SelectionState(_entries(data.get("instruments")), _entries(data.get("playlist")))

def save_selection(path: Path, state: SelectionState):
    path = Path(path)
    data = {
        "instruments": [{"name": n, "selected": s} for n, s in state.instruments],
        "playlist": [{"name": n, "selected": s} for n, s in state.playlist],
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
