# src/emuscript/process.py
"""
Pass 2: score model -> absolute-step event timeline.

Each musical section becomes an array of `len(section) * steps_per_measure + 1`
event lists (the extra slot holds the note-offs of the last step). Each enabled
playlist item starts at the nominal end of the previous one (`len * spm`);
the note-off slot and any overhang of an overfull measure are merged into the
leading slots of the next section.
"""
from __future__ import annotations
from typing import Any, Dict, List, Optional

from .config import with_defaults
from .selection import SelectionState, apply_selection
from .timeline import (
    Arpeggio, Composition, ControlMessage, Event, Instrument, MusicalSection, Step, Strum, Timeline,
    CONTROL_CHANGE, NOTE_OFF, NOTE_ON, PROGRAM_CHANGE, SAMPLE,
)
from .util.velocity import clamp, decay

def _put(slots: List[List[Event]], index: int, ev: Event):
    # Überhang am Sektionsende: Array verlängern
    while index >= len(slots):
        slots.append([])
    slots[index].append(ev)

def _control_event(cm: ControlMessage, channel: int) -> Event:
    if cm.is_program_change:
        return Event(PROGRAM_CHANGE, channel=channel, program=cm.program_index, bank=cm.bank_index)
    return Event(CONTROL_CHANGE, channel=channel, control=cm.id, value=clamp(cm.value))

def _unroll_arpeggio(slots, step: Step, arp: Arpeggio, index: int, effective_length: int,
                     channel: int, velocity: int):
    notes = step.notes_in_playing_order()
    if not notes:
        return
    last = index + effective_length - arp.note_duration_steps
    i = index
    while i < last:
        for note in notes:
            if i >= last:
                break
            _put(slots, i, Event(NOTE_ON, channel=channel, note=note, velocity=velocity))
            _put(slots, i + arp.note_duration_steps, Event(NOTE_OFF, channel=channel, note=note, velocity=velocity))
            i += arp.sub_step_length

def _unroll_strum(slots, step: Step, strum: Strum, index: int, channel: int,
                  velocity: int, floor: int):
    v = velocity
    for k, note in enumerate(step.notes_in_playing_order()):
        _put(slots, index, Event(NOTE_ON, channel=channel, note=note, velocity=v,
                                 delay_ms=float(k * strum.inter_note_delay_ms)))
        v = decay(v, strum.velocity_decay_percent, floor)

def _instrument_events(slots, comp: Composition, section: MusicalSection,
                       instrument: Instrument, floor: int):
    spm = comp.steps_per_measure
    channel = instrument.channel
    for m, measure in enumerate(section.get_measures(instrument.name)):
        t = 0
        for s, step in enumerate(measure.steps):
            index = m * spm + t
            velocity = clamp(step.velocity)

            for cm in step.control_messages:
                _put(slots, index, _control_event(cm, channel))

            # Notes ON
            if not step.ties_backward and not step.is_error():
                if step.is_arp():
                    length = step.length
                    if step.ties_forward:
                        length = section.tied_duration(instrument.name, m, s)
                    _unroll_arpeggio(slots, step, step.ornament, index, length, channel, velocity)
                elif step.is_strum():
                    _unroll_strum(slots, step, step.ornament, index, channel, velocity, floor)
                elif step.is_midi_note():
                    for note in step.pitches:
                        _put(slots, index, Event(NOTE_ON, channel=channel, note=note, velocity=velocity))

                for name in step.samples:
                    sample = comp.samples.get(name)
                    if sample is not None:
                        _put(slots, index, Event(SAMPLE, channel=channel, sample=name, path=sample.path,
                                                 volume=velocity * sample.volume // 100))

            # Notes OFF
            if not step.ties_forward and not step.is_error() and step.is_midi_note():
                for note in step.pitches:
                    _put(slots, index + step.length, Event(NOTE_OFF, channel=channel, note=note, velocity=velocity))

            t += step.length

def build_section_events(comp: Composition, section: MusicalSection,
                         instruments: Optional[List[Instrument]] = None,
                         velocity_floor: int = 20) -> List[List[Event]]:
    """Events of one musical section, indexed by step relative to the section start."""
    if instruments is None:
        instruments = [i for i in comp.instruments if i.selected]
    slots: List[List[Event]] = [[] for _ in range(section.length() * comp.steps_per_measure + 1)]
    for instrument in instruments:
        _instrument_events(slots, comp, section, instrument, velocity_floor)
    return slots

def build_timeline(comp: Composition, selection: Optional[SelectionState] = None,
                   cfg: Optional[Dict[str, Any]] = None) -> Timeline:
    cfg = with_defaults(cfg)
    floor = int(cfg["strum"]["velocity_floor"])
    if selection is not None:
        apply_selection(comp, selection)

    instruments = [i for i in comp.instruments if i.selected]
    steps: List[List[Event]] = []
    offset = 0
    for item in comp.playlist:
        if not item.selected:
            continue
        section = comp.get_section(item.name)
        if section is None:
            continue
        slots = build_section_events(comp, section, instruments, floor)
        for i, evs in enumerate(slots):
            while offset + i >= len(steps):
                steps.append([])
            # Note-offs und Überhang der vorigen Sektion zuerst
            steps[offset + i].extend(evs)
        offset += section.length() * comp.steps_per_measure

    return Timeline(
        steps=tuple(tuple(evs) for evs in steps),
        steps_per_beat=comp.steps_per_beat,
        beats_per_measure=comp.beats_per_measure,
        bpm=comp.bpm,
    )
