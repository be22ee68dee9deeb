# src/emuscript/analyze.py
from __future__ import annotations
from dataclasses import replace
from typing import Any, Dict, List, Optional

from .chords import CHORDS, ChordTable
from .config import get_sound_defaults, with_defaults
from .encode import EncodeContext, encode_line
from .errors import Diagnostics, ErrorKind
from .lexer import Section, find_section
from .preprocess import preprocess
from .timeline import (
    Arpeggio, Composition, ControlMessage, Instrument, Measure, MusicalSection,
    PlaylistItem, Sample, Step, Strum,
)
from .util.text import (
    is_number, parse_cc, parse_function, split_outside_parens, strip_quotes, to_number,
)
from .util.time import time_signature_grid
from .util.velocity import adjust_velocity, clamp

COMPOSITION = "composition"
INSTRUMENTS = "instruments"
SEQUENCES = "sequences"
SOUNDS = "sounds"
CONTROL = "control"

def _clamp_range(v: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, v))

# ---------------- [composition] ----------------

def _load_composition(comp: Composition, section: Optional[Section], diags: Diagnostics):
    if section is None:
        diags.add(ErrorKind.MISSING_SECTION, COMPOSITION)
        return

    for line in section.lines:
        key = line.key.lower()
        value = line.value.strip()

        if key == "playlist":
            for name in line.values(","):
                name = name.strip()
                if name:
                    comp.playlist.append(PlaylistItem(name))
        elif key == "bpm":
            if is_number(value) and 0 <= to_number(value) <= 255:
                comp.bpm = to_number(value)
            else:
                diags.add(ErrorKind.SYNTAX_ERROR, value, line.line_number)
        elif key == "time":
            grid = time_signature_grid(value)
            if grid is None:
                diags.add(ErrorKind.UNSUPPORTED_TIME_SIGNATURE, value, line.line_number)
                grid = time_signature_grid("4/4")
                value = "4/4"
            comp.time_signature = value
            comp.beats_per_measure, comp.steps_per_beat = grid
        elif key == "transposition":
            if is_number(value) and -7 <= to_number(value) <= 7:
                comp.transposition = to_number(value)
            else:
                diags.add(ErrorKind.INVALID_TRANSPOSITION, value, line.line_number)
        elif key == "title":
            comp.title = value.strip('"')
        elif key == "by":
            comp.author = value.strip('"')
        elif key == "cc":
            aliases = parse_cc(value)
            if not aliases:
                diags.add(ErrorKind.CC_SYNTAX_ERROR, value, line.line_number)
            for name, number in aliases.items():
                comp.cc_numbers.setdefault(name, number)
        elif key != "info":
            diags.add(ErrorKind.UNEXPECTED_KEYWORD, line.key, line.line_number)

# ---------------- [instruments] ----------------

def _load_instruments(comp: Composition, section: Optional[Section], diags: Diagnostics, cfg: Dict[str, Any]):
    if section is None:
        diags.add(ErrorKind.MISSING_SECTION, INSTRUMENTS)
        return

    inst_defaults = cfg["defaults"]["instrument"]
    for line in section.lines:
        instrument = comp.get_instrument(line.key)
        if instrument is None:
            instrument = Instrument(
                name=line.key,
                endpoint=str(inst_defaults["endpoint"]),
                velocity=int(inst_defaults["velocity"]),
            )
            comp.instruments.append(instrument)

        for item in line.values(","):
            parts = [p for p in item.split("=") if p != ""]
            if len(parts) == 2:
                key = parts[0].strip()
                value = parts[1].strip()
                if key == "channel":
                    instrument.channel = _clamp_range(to_number(value) - 1, 0, 15)
                elif key == "octave":
                    instrument.octave = max(0, to_number(value))
                elif key == "velocity":
                    instrument.velocity = clamp(to_number(value))
                elif key != "info":
                    diags.add(ErrorKind.UNEXPECTED_KEYWORD, key, line.line_number)
            elif len(parts) == 1 and parts[0].strip() == "sample":
                instrument.endpoint = ""
            elif len(parts) == 1 and "=" not in item:
                instrument.endpoint = strip_quotes(parts[0])
            else:
                diags.add(ErrorKind.SYNTAX_ERROR, item.strip(), line.line_number)

# ---------------- [sequences] / [sounds] ----------------

def _load_sequences(comp: Composition, section: Optional[Section]):
    if section is None:
        return
    for line in section.lines:
        if line.key in comp.sequences:
            # Fortsetzungszeile
            comp.sequences[line.key] += " | " + line.value
        else:
            comp.sequences[line.key] = line.value

def _load_sounds(comp: Composition, section: Optional[Section], diags: Diagnostics, cfg: Dict[str, Any]):
    if section is None:
        return

    defaults = get_sound_defaults(cfg)
    for line in section.lines:
        name = line.key
        function_text = ""
        mods = dict(defaults)

        for item in split_outside_parens(line.value, ","):
            if "(" in item and ")" in item:
                function_text = item
                continue
            parts = [p for p in item.split("=") if p != ""]
            if len(parts) == 2:
                key = parts[0].strip()
                if key in mods:
                    mods[key] = to_number(parts[1])
                else:
                    diags.add(ErrorKind.UNEXPECTED_KEYWORD, key, line.line_number)
            else:
                diags.add(ErrorKind.SYNTAX_ERROR, item.strip(), line.line_number)

        call = parse_function(function_text)
        if len(call) < 2:
            diags.add(ErrorKind.SYNTAX_ERROR, function_text.strip() or name, line.line_number)
            continue

        fct, args = call[0], call[1:]
        if fct == "sample":
            comp.samples[name] = Sample(name, strip_quotes(args[0]), int(mods["volume"]))
        elif fct == "midi":
            comp.literal_pitches[name] = to_number(args[0])
        elif fct == "arp":
            comp.ornaments[name] = Arpeggio(
                play_order=tuple(to_number(a) for a in args),
                sub_step_length=_clamp_range(int(mods["step"]), 2, 24),
                note_duration_steps=_clamp_range(int(mods["duration"]), 2, 24),
            )
        elif fct == "strum":
            comp.ornaments[name] = Strum(
                play_order=tuple(to_number(a) for a in args),
                inter_note_delay_ms=_clamp_range(int(mods["msec"]), 3, 15),
                velocity_decay_percent=_clamp_range(int(mods["vdec"]), 0, 10),
            )
        else:
            diags.add(ErrorKind.UNEXPECTED_KEYWORD, fct, line.line_number)

# ---------------- musical sections ----------------

def _load_musical_section(comp: Composition, section: Section, diags: Diagnostics,
                          cfg: Dict[str, Any], chords: ChordTable) -> MusicalSection:
    musical = MusicalSection(section.name)
    max_depth = int(cfg["sequences"]["max_depth"])
    # nicht deklarierte Instrumente (chord, text ...)
    step_velocity = int(cfg["defaults"]["step_velocity"])

    # chord-Zeilen zuerst, damit chord/root aufgelöst werden können
    for line in section.move_first("chord").lines:
        name = line.key
        instrument = comp.get_instrument(name) or Instrument(name, velocity=step_velocity)
        phrases = preprocess(line.value, comp.sequences, musical.length(),
                             diags, line.line_number, max_depth)
        ctx = EncodeContext(
            steps_per_beat=comp.steps_per_beat,
            beats_per_measure=comp.beats_per_measure,
            transposition=comp.transposition,
            octave=instrument.midi_octave(),
            velocity=instrument.velocity,
            category=instrument.category(),
            literal_pitches=comp.literal_pitches,
            samples=comp.samples,
            ornaments=comp.ornaments,
            chords=chords,
        )
        musical.measures[name] = encode_line(
            phrases, ctx, musical.measures.get(name),
            chord_at=musical.chord_at, diags=diags, line_number=line.line_number,
        )
    return musical

# ---------------- [control] ----------------

def _measure_range(target: List[str], message: str, count: int):
    start, end = 1, (count if message == "velocity" else 1)
    if len(target) > 3:
        bounds = target[2].split("..")
        start = to_number(bounds[0])
        end = to_number(bounds[1]) if len(bounds) == 2 else start
    return start, end

def _load_control(comp: Composition, section: Optional[Section], diags: Diagnostics):
    if section is None:
        return

    for line in section.lines:
        target = line.path()
        if len(target) < 2:
            diags.add(ErrorKind.SYNTAX_ERROR, line.key, line.line_number)
            continue

        instrument_name, message = target[0], target[-1]
        section_name = target[1] if len(target) > 2 else (comp.sections[0].name if comp.sections else "")
        musical = comp.get_section(section_name)
        if musical is None:
            diags.add(ErrorKind.UNDEFINED_SECTION, section_name, line.line_number)
            continue

        measures = list(musical.get_measures(instrument_name)) or [Measure()]
        start, end = _measure_range(target, message, len(measures))
        value = line.value.strip()

        messages: List[ControlMessage] = []
        if message == "velocity":
            pass
        elif message == "program":
            bank_program = [p for p in value.split(".") if p]
            if len(bank_program) != 2:
                diags.add(ErrorKind.SYNTAX_ERROR, value, line.line_number)
                continue
            messages.append(ControlMessage.program(to_number(bank_program[0]), to_number(bank_program[1])))
        elif message == "cc":
            values = parse_cc(value)
            if not values:
                diags.add(ErrorKind.CC_SYNTAX_ERROR, value, line.line_number)
            for name, cc_value in values.items():
                cc = comp.cc_numbers.get(name, to_number(name))
                if cc > 0:
                    messages.append(ControlMessage.controller(cc, clamp(cc_value)))
                else:
                    diags.add(ErrorKind.UNEXPECTED_KEYWORD, name, line.line_number)
        else:
            diags.add(ErrorKind.UNEXPECTED_KEYWORD, message, line.line_number)
            continue

        for m in range(len(measures)):
            if not (start <= m + 1 <= end):
                continue
            steps = measures[m].steps
            if message == "velocity":
                steps = tuple(replace(s, velocity=adjust_velocity(s.velocity, value)) for s in steps)
            elif messages:
                if not steps:
                    # leerer Takt: stiller Step als Träger
                    steps = (Step(),)
                first = steps[0]
                first = replace(first, control_messages=first.control_messages + tuple(messages))
                steps = (first,) + steps[1:]
            measures[m] = Measure(steps)

        musical.measures[instrument_name] = measures

# ---------------- entry ----------------

def analyze_script(sections: List[Section], cfg: Optional[Dict[str, Any]] = None,
                   diags: Optional[Diagnostics] = None, chords: ChordTable = CHORDS) -> Composition:
    """Parsed sections -> score model. Problems are collected in `diags`, never raised."""
    cfg = with_defaults(cfg)
    diags = diags if diags is not None else Diagnostics()
    comp = Composition()

    composition = find_section(sections, COMPOSITION)
    _load_composition(comp, composition, diags)
    _load_instruments(comp, find_section(sections, INSTRUMENTS), diags, cfg)
    _load_sequences(comp, find_section(sections, SEQUENCES))
    _load_sounds(comp, find_section(sections, SOUNDS), diags, cfg)

    playlist_line = composition.line_number_of("playlist") if composition else 0
    seen = set()
    for item in comp.playlist:
        if item.name in seen:
            continue
        seen.add(item.name)
        section = find_section(sections, item.name)
        if section is None:
            diags.add(ErrorKind.UNDEFINED_SECTION, item.name, playlist_line)
            continue
        comp.sections.append(_load_musical_section(comp, section, diags, cfg, chords))

    _load_control(comp, find_section(sections, CONTROL), diags)
    return comp
