from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Tuple, Union, Iterator
from .errors import ErrorKind

DEFAULT_BPM = 120
DEFAULT_TIME_SIGNATURE = "4/4"
DEFAULT_STEP_VELOCITY = 80

# --- Pass 1: score model ---

class StepKind(str, Enum):
    SYNTH = "synth"
    DRUM = "drum"
    SAMPLE = "sample"
    SILENCE = "silence"
    TEXT = "text"

class Category(str, Enum):
    SYNTH = "synth"
    DRUM = "drum"
    SAMPLE = "sample"
    TEXT = "text"
    CHORD = "chord"

@dataclass(frozen=True)
class ControlMessage:
    """Program change (bank/program, 0-based) or controller message (id/value)."""
    id: int
    value: int
    is_program_change: bool = False

    @classmethod
    def program(cls, bank: int, program: int) -> "ControlMessage":
        # Text is 1-based, MIDI is 0-based
        return cls(id=bank - 1, value=program - 1, is_program_change=True)

    @classmethod
    def controller(cls, cc: int, value: int) -> "ControlMessage":
        return cls(id=cc, value=value)

    @property
    def bank_index(self) -> int:
        return self.id

    @property
    def program_index(self) -> int:
        return self.value

@dataclass(frozen=True)
class Arpeggio:
    play_order: Tuple[int, ...]     # 1-based, cyclic
    sub_step_length: int            # 2..24
    note_duration_steps: int        # 2..24

@dataclass(frozen=True)
class Strum:
    play_order: Tuple[int, ...]
    inter_note_delay_ms: int        # 3..15
    velocity_decay_percent: int     # 0..10

Ornament = Union[Arpeggio, Strum]

@dataclass(frozen=True)
class Step:
    kind: StepKind = StepKind.SILENCE
    pitches: Tuple[int, ...] = ()
    samples: Tuple[str, ...] = ()
    control_messages: Tuple[ControlMessage, ...] = ()
    staff_positions: Tuple[int, ...] = ()
    display_text: str = ""
    velocity: int = DEFAULT_STEP_VELOCITY
    length: int = 1
    octave_hint: int = 0
    ties_forward: bool = False
    ties_backward: bool = False
    ornament: Optional[Ornament] = None
    error: Optional[ErrorKind] = None

    def is_error(self) -> bool:
        return self.error is not None

    def is_midi_note(self) -> bool:
        return self.kind in (StepKind.SYNTH, StepKind.DRUM)

    def is_arp(self) -> bool:
        return isinstance(self.ornament, Arpeggio)

    def is_strum(self) -> bool:
        return isinstance(self.ornament, Strum)

    def notes_in_playing_order(self) -> List[int]:
        if self.ornament is None:
            return []
        return [self.pitches[i - 1] for i in self.ornament.play_order if 0 < i <= len(self.pitches)]

@dataclass(frozen=True)
class Measure:
    steps: Tuple[Step, ...] = ()

    def length(self) -> int:
        return sum(s.length for s in self.steps)

@dataclass
class Instrument:
    name: str
    endpoint: str = "MIDI Input"   # "" = sampler
    channel: int = 0               # 0..15
    octave: int = 0                # 1..4, 0 = drum/sampler
    velocity: int = 100
    selected: bool = True

    def is_sampler(self) -> bool:
        return self.endpoint == ""

    def is_drum(self) -> bool:
        return self.octave == 0 and not self.is_sampler()

    def midi_octave(self) -> int:
        return 0 if self.octave == 0 else self.octave + 2

    def category(self) -> Category:
        if self.is_sampler():
            return Category.SAMPLE
        if "text" in self.name:
            return Category.TEXT
        if "chord" in self.name:
            return Category.CHORD
        if self.octave == 0:
            return Category.DRUM
        return Category.SYNTH

@dataclass(frozen=True)
class Sample:
    name: str
    path: str = ""
    volume: int = 100

@dataclass
class PlaylistItem:
    name: str
    selected: bool = True

@dataclass
class MusicalSection:
    name: str
    measures: Dict[str, List[Measure]] = field(default_factory=dict)

    def length(self) -> int:
        return max((len(m) for m in self.measures.values()), default=0)

    def get_measures(self, instrument_name: str) -> List[Measure]:
        return self.measures.get(instrument_name, [])

    def chord_at(self, measure_index: int, position: int) -> str:
        """Chord name of the `chord` line active at (0-based measure, step position)."""
        measures = self.get_measures("chord")
        if measure_index >= len(measures):
            return ""
        t = 0
        for step in measures[measure_index].steps:
            if t <= position < t + step.length:
                return step.display_text
            t += step.length
        return ""

    def tied_duration(self, instrument_name: str, measure_index: int, step_index: int) -> int:
        """Length of a step plus every continuation step chained to it by ties."""
        flat = [s for m in self.get_measures(instrument_name)[measure_index:] for s in m.steps]
        flat = flat[step_index:]
        if not flat:
            return 0
        duration = flat[0].length
        prev = flat[0]
        for step in flat[1:]:
            if not (prev.ties_forward and step.ties_backward):
                break
            duration += step.length
            prev = step
        return duration

@dataclass
class Composition:
    title: str = ""
    author: str = ""
    time_signature: str = DEFAULT_TIME_SIGNATURE
    bpm: int = DEFAULT_BPM
    beats_per_measure: int = 4
    steps_per_beat: int = 12
    transposition: int = 0
    instruments: List[Instrument] = field(default_factory=list)
    playlist: List[PlaylistItem] = field(default_factory=list)
    samples: Dict[str, Sample] = field(default_factory=dict)
    literal_pitches: Dict[str, int] = field(default_factory=dict)
    ornaments: Dict[str, Ornament] = field(default_factory=dict)
    sequences: Dict[str, str] = field(default_factory=dict)
    cc_numbers: Dict[str, int] = field(default_factory=dict)
    sections: List[MusicalSection] = field(default_factory=list)

    @property
    def steps_per_measure(self) -> int:
        return self.beats_per_measure * self.steps_per_beat

    def get_section(self, name: str) -> Optional[MusicalSection]:
        for section in self.sections:
            if section.name == name:
                return section
        return None

    def get_instrument(self, name: str) -> Optional[Instrument]:
        for instrument in self.instruments:
            if instrument.name == name:
                return instrument
        return None

    def section_length(self, name: str) -> int:
        section = self.get_section(name)
        return section.length() if section else 0

    def measures_count(self) -> int:
        return sum(self.section_length(item.name) for item in self.playlist)

# --- Pass 2: event timeline ---

NOTE_ON = "note_on"
NOTE_OFF = "note_off"
CONTROL_CHANGE = "control_change"
PROGRAM_CHANGE = "program_change"
SAMPLE = "sample"

@dataclass(frozen=True)
class Event:
    kind: str              # "note_on" | "note_off" | "control_change" | "program_change" | "sample"
    channel: int = 0
    note: int = 0
    velocity: int = 0
    control: int = 0
    value: int = 0
    program: int = 0
    bank: int = 0
    sample: str = ""
    path: str = ""
    volume: int = 0
    delay_ms: float = 0.0

@dataclass(frozen=True)
class Timeline:
    steps: Tuple[Tuple[Event, ...], ...] = ()
    steps_per_beat: int = 12
    beats_per_measure: int = 4
    bpm: int = DEFAULT_BPM

    def __len__(self) -> int:
        return len(self.steps)

    def __getitem__(self, index: int) -> Tuple[Event, ...]:
        return self.steps[index]

    def step_duration(self) -> float:
        """Real-time duration of one step, in seconds."""
        if self.bpm <= 0 or self.steps_per_beat <= 0:
            return 0.0
        return 60.0 / self.bpm / self.steps_per_beat

    def events(self) -> Iterator[Tuple[int, Event]]:
        for i, evs in enumerate(self.steps):
            for ev in evs:
                yield i, ev

    def note_on_count(self) -> int:
        return sum(1 for _, ev in self.events() if ev.kind == NOTE_ON)

    def last_event_index(self) -> int:
        last = -1
        for i, evs in enumerate(self.steps):
            if evs:
                last = i
        return last

