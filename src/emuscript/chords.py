"""Scale-degree chord table: triads and seventh chords on all seven degrees."""
from __future__ import annotations
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

_CHORDS = {
    # Diatonic triads: C, Dm, Em, F, G, Am, B°
    "1M": "1 3 5",
    "2m": "2 4 6",
    "3m": "3 5 7",
    "4M": "4 6 1",
    "5M": "5 7 2",
    "6m": "6 1 3",
    "7d": "7 2 4",

    # Chromatic major/minor triads: Cm, D, E, Fm, Gm, A, Bm, B
    "1m": "1 #2 5",
    "2M": "2 #4 6",
    "3M": "3 #5 7",
    "4m": "4 #5 1",
    "5m": "5 #6 2",
    "6M": "6 #1 3",
    "7m": "7 2 #4",
    "7M": "7 #2 #4",

    # Chromatic diminished triads
    "1d": "1 #2 #4",
    "2d": "2 4 #5",
    "3d": "3 5 #6",
    "4d": "4 #5 7",
    "5d": "5 #6 #1",
    "6d": "6 1 #2",

    # Augmented triads
    "1a": "1 3 #5",
    "2a": "2 #4 #6",
    "3a": "3 #5 1",
    "4a": "4 6 #1",
    "5a": "5 7 #2",
    "6a": "6 #1 4",
    "7a": "7 #2 5",

    # Diatonic sevenths: CM7, Dm7, Em7, FM7, G7, Am7, Bø7
    "1M7": "1 3 5 7",
    "2m7": "2 4 6 1",
    "3m7": "3 5 7 2",
    "4M7": "4 6 1 3",
    "5D7": "5 7 2 4",
    "6m7": "6 1 3 5",
    "7d7": "7 2 4 6",

    # Chromatic dominant sevenths
    "1D7": "1 3 5 #6",
    "2D7": "2 #4 6 1",
    "3D7": "3 #5 7 2",
    "4D7": "4 6 1 #2",
    "6D7": "6 #1 3 5",
    "7D7": "7 #2 #4 6",

    # Chromatic major sevenths
    "2M7": "2 4 6 #1",
    "3M7": "3 5 7 #2",
    "5M7": "5 7 2 #4",
    "6M7": "6 1 3 #5",
    "7M7": "7 2 4 #6",

    # Chromatic minor sevenths
    "1m7": "1 #2 5 #6",
    "4m7": "4 #5 1 #2",
    "5m7": "5 #6 2 4",
    "7m7": "7 2 #4 6",

    # Chromatic diminished sevenths
    "1d7": "1 #2 #4 6",
    "2d7": "2 4 #5 7",
    "3d7": "3 5 #6 #1",
    "4d7": "4 #5 7 2",
    "5d7": "5 #6 #1 3",
    "6d7": "6 1 #2 #4",
}

ROOT_ONLY = -1

def _lower_if_needed(chord: str) -> str:
    # Bass on 6, #6 or 7 is voiced one octave lower
    if chord.startswith(("6", "#6", "7")):
        return "'" + chord
    return chord

class ChordTable:
    """
    Immutable lookup of chord names (``1M``, ``5D7``, ...) to scale degrees.

    A leading quote (``'1M``) moves the lowest note to the top, a trailing
    quote (``1M'``) moves the highest note to the bottom.
    """

    def __init__(self, chords: Optional[Mapping[str, str]] = None):
        src = _CHORDS if chords is None else chords
        self._map: Mapping[str, Tuple[str, ...]] = MappingProxyType(
            {name: tuple(notes.split()) for name, notes in src.items()}
        )

    def __contains__(self, name: str) -> bool:
        return bool(self.notes(name))

    def notes(self, name: str) -> Tuple[str, ...]:
        """Degrees of a chord, inversion applied; () if unknown."""
        chord_name = name
        leading = trailing = False
        if chord_name.startswith("'"):
            leading = True
            chord_name = chord_name[1:]
        elif chord_name.endswith("'"):
            trailing = True
            chord_name = chord_name[:-1]

        notes = self._map.get(chord_name, ())
        if notes and leading:
            # tiefster Ton nach oben
            notes = notes[1:] + notes[:1]
        elif notes and trailing:
            notes = notes[-1:] + notes[:-1]
        return notes

    def find(self, name: str, notes_count: Optional[int] = None) -> str:
        """
        Degrees of a chord as a compact string ("135", "'613").

        notes_count < number of chord notes -> reduced chord,
        notes_count > number of chord notes -> repeated from the bottom,
        notes_count == -1 -> root degree only. Unknown chord -> "".
        """
        notes = self.notes(name)
        if not notes:
            return ""
        if notes_count is None:
            chord = "".join(notes)
        elif notes_count == ROOT_ONLY:
            chord = name[1:] if name.startswith("'") else name
            chord = chord[0]
        elif notes_count < 1:
            return ""
        else:
            # 1..3 = prefix, 4 and 5 repeat from the start of the chord
            n = len(notes)
            chord = "".join(notes[i % n] for i in range(notes_count))
        return _lower_if_needed(chord)

CHORDS = ChordTable()
