# src/emuscript/encode.py
"""
Step encoder: one phrase (= one measure) of notation -> Measure of Steps.

Durations: the phrase budget is steps_per_beat * beats_per_measure. Every
token weighs one unit ("(" halves, ")" doubles, "[" divides by 3, "]"
multiplies by 3, a trailing "-" makes it dotted = 1.5 units); the default
step length is budget / total units.
"""
from __future__ import annotations
from dataclasses import dataclass, field, replace
from fractions import Fraction
from typing import Callable, Dict, List, Mapping, Optional, Union

from .chords import CHORDS, ChordTable, ROOT_ONLY
from .errors import Diagnostics, ErrorKind
from .timeline import (
    Category, Measure, Ornament, Sample, Step, StepKind, DEFAULT_STEP_VELOCITY,
)
from .util.text import parse_function, to_number, tokenize

TIE = "-"
SILENCE = "."

# Scale degrees over three octaves, index = semitones above the low '1
DEGREES = [
    "'1", "#'1", "'2", "#'2", "'3", "'4", "#'4", "'5", "#'5", "'6", "#'6", "'7",
    "1",  "#1",  "2",  "#2",  "3",  "4",  "#4",  "5",  "#5",  "6",  "#6",  "7",
    "1'", "#1'", "2'", "#2'", "3'", "4'", "#4'", "5'", "#5'", "6'", "#6'", "7'",
]
DEGREE_INDEX: Dict[str, int] = {d: i for i, d in enumerate(DEGREES)}

# Staff position of each degree ('5 = 0 ... 6' = 15)
STAFF_POSITIONS = [
    -4, -4, -3, -3, -2, -1, -1,  0,  0,  1,  1,  2,
     3,  3,  4,  4,  5,  6,  6,  7,  7,  8,  8,  9,
    10, 10, 11, 11, 12, 13, 13, 14, 14, 15, 15, 16,
]
STAFF_MIN, STAFF_MAX = 0, 15
STAFF_LITERAL = 12
STAFF_SAMPLE = 7
STAFF_ERROR = 2

DEGREE_TEXT = ["1", "♯1", "2", "♯2", "3", "4", "♯4", "5", "♯5", "6", "♯6", "7"]

DRUMS: Dict[str, int] = {
    "b": 36,   # bass drum
    "s": 38,   # snare drum
    "1": 41,   # floor tom 1
    "2": 45,   # floor tom 2
    "3": 47,   # tom-tom 1
    "4": 48,   # tom-tom 2
    "i": 37,   # drum stick
    "h": 42,   # closed hi-hat
    "o": 46,   # open hi-hat
    "r": 51,   # ride cymbal
    "c": 49,   # crash cymbal
}

ERROR_PITCH = -1

ChordAt = Callable[[int, int], str]

@dataclass(frozen=True)
class EncodeContext:
    steps_per_beat: int = 12
    beats_per_measure: int = 4
    transposition: int = 0
    octave: int = 0                  # MIDI octave (instrument octave + 2), 0 = none
    velocity: int = DEFAULT_STEP_VELOCITY
    category: Category = Category.SYNTH
    literal_pitches: Mapping[str, int] = field(default_factory=dict)
    samples: Mapping[str, Sample] = field(default_factory=dict)
    ornaments: Mapping[str, Ornament] = field(default_factory=dict)
    chords: ChordTable = CHORDS

    @property
    def budget(self) -> int:
        return self.steps_per_beat * self.beats_per_measure

# --- Resolver: one "/"-separated part -> tagged variant ---

@dataclass(frozen=True)
class LiteralPitch:
    name: str
    pitch: int

@dataclass(frozen=True)
class SampleRef:
    name: str

@dataclass(frozen=True)
class OrnamentRef:
    ornament: Ornament

@dataclass(frozen=True)
class DrumHits:
    letters: str

@dataclass(frozen=True)
class TextPart:
    text: str
    chord: bool = False

@dataclass(frozen=True)
class Degrees:
    notation: str

@dataclass(frozen=True)
class Invalid:
    kind: ErrorKind
    text: str

Resolved = Union[LiteralPitch, SampleRef, OrnamentRef, DrumHits, TextPart, Degrees, Invalid]

def _resolve_chord_request(part: str, chord: str, chords: ChordTable) -> Resolved:
    if part == "chord":
        notes = chords.find(chord) if chord else ""
    elif part == "root":
        notes = chords.find(chord, ROOT_ONLY) if chord else ""
    else:
        args = parse_function(part)
        n = to_number(args[1]) if len(args) == 2 else 0
        if n <= 0:
            return Invalid(ErrorKind.SYNTAX_ERROR, part)
        notes = chords.find(chord, n) if chord else ""
    if not notes:
        return Invalid(ErrorKind.INVALID_CHORD, chord or part)
    return Degrees(notes)

def resolve_part(part: str, ctx: EncodeContext, chord: str = "") -> Resolved:
    """
    Priority: literal pitch, sample, ornament, then the notation of the
    instrument category (drum letters, text, chord name, scale degrees).
    """
    if part in ctx.literal_pitches:
        return LiteralPitch(part, ctx.literal_pitches[part])
    if part in ctx.samples:
        return SampleRef(part)
    if part in ctx.ornaments:
        return OrnamentRef(ctx.ornaments[part])

    if ctx.category in (Category.DRUM, Category.SAMPLE):
        return DrumHits(part)
    if ctx.category is Category.TEXT:
        return TextPart(part)
    if ctx.category is Category.CHORD:
        return TextPart(part, chord=True)

    if part in ("chord", "root") or (part.startswith("chord(") and part.endswith(")")):
        return _resolve_chord_request(part, chord, ctx.chords)
    return Degrees(ctx.chords.find(part) or part)

# --- Step builder ---

class _StepBuilder:
    """Collects the parts of one token before freezing them into a Step."""

    def __init__(self, velocity: int):
        self.kind = StepKind.SILENCE
        self.pitches: List[int] = []
        self.samples: List[str] = []
        self.positions: List[int] = []
        self.text = ""
        self.velocity = velocity
        self.octave_hint = 0
        self.ornament: Optional[Ornament] = None
        self.error: Optional[ErrorKind] = None

    def fail(self, kind: ErrorKind):
        if self.error is None:
            self.error = kind

    def _keep_ascending(self, prev: Optional[int]):
        if prev is None:
            return
        while len(self.pitches) > 1 and prev >= self.pitches[-1]:
            self.pitches[-1] += 12
            self.positions[-1] += 7

    def add_literal(self, name: str, pitch: int, is_drum: bool):
        prev = self.pitches[-1] if self.pitches else None
        self.kind = StepKind.DRUM if is_drum else StepKind.SYNTH
        self.text += name + " "
        self.positions.append(STAFF_LITERAL)
        self.pitches.append(pitch)
        if not is_drum:
            self._keep_ascending(prev)
        self.octave_hint = 0

    def add_sample(self, name: str):
        self.kind = StepKind.SAMPLE
        self.text += name + " "
        self.positions.append(STAFF_SAMPLE)
        self.samples.append(name)
        self.octave_hint = 0

    def add_text(self, text: str):
        self.kind = StepKind.TEXT
        self.text = text
        self.octave_hint = 0

    def add_drums(self, letters: str):
        for c in letters:
            if c == SILENCE:
                continue
            note = DRUMS.get(c.lower())
            if note is None:
                self.fail(ErrorKind.INVALID_DRUM)
                note = 0
            self.kind = StepKind.DRUM
            self.pitches.append(note)
            self.positions.append(STAFF_LITERAL)
            self.text += c
            self.octave_hint = 0

    def _add_degree(self, note: str, octave: int, transposition: int):
        prev = self.pitches[-1] if self.pitches else None

        if note == SILENCE:
            self.text = ""
            self.kind = StepKind.SILENCE
            return
        self.kind = StepKind.SYNTH
        index = DEGREE_INDEX.get(note)
        if index is None:
            self.fail(ErrorKind.SYNTAX_ERROR)
            return

        self.positions.append(STAFF_POSITIONS[index])
        midi = (octave - 1) * 12 + index
        self.pitches.append(midi + transposition)
        if self.octave_hint == 0 and midi > 24:
            self.octave_hint = midi // 12 - 2

        # Noten immer aufsteigend
        self._keep_ascending(prev)
        self.text += DEGREE_TEXT[midi % 12] + " "

        pos = self.positions[-1]
        if pos < STAFF_MIN or self.pitches[-1] < 0:
            self.fail(ErrorKind.NOTE_TOO_LOW)
        elif pos > STAFF_MAX or self.pitches[-1] > 127:
            self.fail(ErrorKind.NOTE_TOO_HIGH)

    def add_degrees(self, notation: str, octave: int, transposition: int):
        """'135', "'613", '#4', "1'" ... (# raises, leading/trailing quote = octave down/up)."""
        sharp = False
        higher = notation.endswith("'")
        lower = notation.startswith("#'") or notation.startswith("'")
        for c in notation:
            if c == "#":
                sharp = True
            elif c != "'":
                note = ("#" if sharp else "") + ("'" if lower else "") + c + ("'" if higher else "")
                self._add_degree(note, octave, transposition)
                sharp = False
                higher = False

        if self.error is not None:
            self.mark_error(notation)

    def mark_error(self, text: str, kind: Optional[ErrorKind] = None):
        if kind is not None:
            self.fail(kind)
        self.text = text
        self.pitches = [ERROR_PITCH]
        if self.error is ErrorKind.NOTE_TOO_LOW:
            self.positions = [STAFF_MIN]
        elif self.error is ErrorKind.NOTE_TOO_HIGH:
            self.positions = [STAFF_MAX]
        else:
            self.positions = [STAFF_ERROR]
            if self.error is ErrorKind.SYNTAX_ERROR and text and (text[0] == "#" or text[0].isdigit()):
                self.error = ErrorKind.INVALID_NOTE

    def apply(self, resolved: Resolved, ctx: EncodeContext, chords: ChordTable):
        if isinstance(resolved, LiteralPitch):
            self.add_literal(resolved.name, resolved.pitch, ctx.category is Category.DRUM)
        elif isinstance(resolved, SampleRef):
            self.add_sample(resolved.name)
        elif isinstance(resolved, OrnamentRef):
            self.ornament = resolved.ornament
        elif isinstance(resolved, DrumHits):
            self.add_drums(resolved.letters)
        elif isinstance(resolved, TextPart):
            self.add_text(resolved.text)
            if resolved.chord and resolved.text != SILENCE and resolved.text not in chords:
                self.fail(ErrorKind.INVALID_CHORD)
        elif isinstance(resolved, Degrees):
            self.add_degrees(resolved.notation, ctx.octave, ctx.transposition)
        elif isinstance(resolved, Invalid):
            self.mark_error(resolved.text, resolved.kind)

    def build(self, length: int) -> Step:
        pitches = self.pitches
        positions = self.positions
        if self.kind is StepKind.DRUM and self.error is None:
            pitches = sorted(set(pitches))
            positions = [STAFF_LITERAL] * len(pitches)
        return Step(
            kind=self.kind,
            pitches=tuple(pitches),
            samples=tuple(self.samples),
            staff_positions=tuple(positions),
            display_text=self.text.strip() if self.kind is not StepKind.TEXT else self.text,
            velocity=self.velocity,
            length=max(1, length),
            octave_hint=self.octave_hint,
            ornament=self.ornament,
            error=self.error,
        )

def encode_token(word: str, ctx: EncodeContext, length: int, chord: str = "") -> Step:
    """One token ("1", "135", "1/5", "1-", "bh", "chord(2)") -> Step."""
    b = _StepBuilder(ctx.velocity)
    notes = word
    if notes.endswith(TIE) and len(notes) > 1:
        # punktierte Note
        notes = notes[:-1]
        length += length // 2
    for part in notes.split("/"):
        if not part:
            # "/", "1/", "1//3"
            b.fail(ErrorKind.SYNTAX_ERROR)
            continue
        b.apply(resolve_part(part, ctx, chord), ctx, ctx.chords)
    if b.error is not None:
        b.mark_error(notes)
    return b.build(length)

# --- Durations ---

def unit_count(tokens: List[str]) -> Fraction:
    count = Fraction(0)
    unit = Fraction(1)
    for token in tokens:
        if token == "(":
            unit /= 2
        elif token == ")":
            unit *= 2
        elif token == "[":
            unit /= 3
        elif token == "]":
            unit *= 3
        elif token in ("{", "}"):
            continue
        elif token.endswith(TIE) and len(token) > 1:
            count += unit * Fraction(3, 2)
        else:
            count += unit
    return count

def default_step_length(tokens: List[str], budget: int) -> int:
    count = unit_count(tokens)
    if count <= 0:
        return 0
    return int(budget / count)

# --- Lines ---

def encode_line(phrases: List[str], ctx: EncodeContext, existing: Optional[List[Measure]] = None,
                chord_at: Optional[ChordAt] = None, diags: Optional[Diagnostics] = None,
                line_number: int = 0) -> List[Measure]:
    """
    Encode the phrases of one instrument line and append them to the
    instrument's existing measures. A leading "-" ties the previous
    measure's last step across the bar line.
    """
    measures: List[Measure] = list(existing or [])

    for phrase in phrases:
        tokens = tokenize(phrase)
        if not tokens:
            continue
        measure_index = len(measures)
        base = default_step_length(tokens, ctx.budget)
        unit = Fraction(1)
        steps: List[Step] = []
        position = 0

        for word in tokens:
            length = max(1, int(base * unit))
            if word == "(":
                unit /= 2
            elif word == ")":
                unit *= 2
            elif word == "[":
                unit /= 3
            elif word == "]":
                unit *= 3
            elif word in ("{", "}"):
                continue
            elif word == TIE:
                if steps:
                    last = steps[-1]
                    steps[-1] = replace(last, length=last.length + length)
                elif measures and measures[-1].steps:
                    # Note über den Taktstrich hinaus
                    prev = measures[-1]
                    held = prev.steps[-1]
                    measures[-1] = Measure(prev.steps[:-1] + (replace(held, ties_forward=True),))
                    steps.append(replace(held, length=length, ties_forward=False,
                                         ties_backward=True, control_messages=()))
                else:
                    steps.append(Step(length=length, velocity=ctx.velocity))
                position += length
            else:
                chord = chord_at(measure_index, position) if chord_at else ""
                step = encode_token(word, ctx, length, chord)
                steps.append(step)
                position += step.length
                if step.is_error() and diags is not None:
                    diags.add(step.error, step.display_text, line_number)

        measures.append(Measure(tuple(steps)))

    return measures
