from __future__ import annotations
import mido
from typing import Dict, List, Optional, Tuple

from .timeline import (
    Event, Timeline, CONTROL_CHANGE, NOTE_OFF, NOTE_ON, PROGRAM_CHANGE, SAMPLE,
)
from .util.time import ms_to_ticks, steps_to_ticks
from .util.velocity import clamp

DEFAULT_TPB = 960
BANK_SELECT = 0

# ---------- interne Helfer ----------

def _bpm_to_micro(bpm: float) -> int:
    return int(round(60_000_000 / max(1e-6, float(bpm))))

def _denominator(timeline: Timeline) -> int:
    # 12 Steps/Beat = Viertel, 6 Steps/Beat = Achtel
    return 8 if timeline.steps_per_beat == 6 else 4

def to_mido_message(ev: Event, time: int = 0) -> List[mido.Message]:
    """Timeline event -> mido messages ([] for sample triggers)."""
    ch = max(0, min(15, ev.channel))
    if ev.kind == NOTE_ON:
        return [mido.Message("note_on", note=clamp(ev.note), velocity=clamp(ev.velocity), channel=ch, time=time)]
    if ev.kind == NOTE_OFF:
        return [mido.Message("note_off", note=clamp(ev.note), velocity=clamp(ev.velocity), channel=ch, time=time)]
    if ev.kind == CONTROL_CHANGE:
        return [mido.Message("control_change", control=clamp(ev.control), value=clamp(ev.value), channel=ch, time=time)]
    if ev.kind == PROGRAM_CHANGE:
        out = []
        if ev.bank >= 0:
            out.append(mido.Message("control_change", control=BANK_SELECT, value=clamp(ev.bank), channel=ch, time=time))
            time = 0
        out.append(mido.Message("program_change", program=clamp(ev.program), channel=ch, time=time))
        return out
    return []

def _emit_conductor(track: mido.MidiTrack, timeline: Timeline, samples: List[Tuple[int, str]]):
    """Tempo, Takt und Sample-Trigger (als Marker) in einen Track."""
    track.append(mido.MetaMessage("time_signature", numerator=timeline.beats_per_measure,
                                  denominator=_denominator(timeline), time=0))
    track.append(mido.MetaMessage("set_tempo", tempo=_bpm_to_micro(timeline.bpm), time=0))
    last = 0
    for tick, name in sorted(samples):
        track.append(mido.MetaMessage("marker", text=name, time=tick - last))
        last = tick

def _emit_track_events(mt: mido.MidiTrack, evs: List[Tuple[int, int, Event]]):
    """Schreibt Events als delta-times; bei gleichem Tick Note-off vor allem anderen."""
    evs.sort(key=lambda x: (x[0], x[1]))
    last = 0
    for tick, _, ev in evs:
        mt.extend(to_mido_message(ev, tick - last))
        last = tick

# ---------- öffentliche Writer-API ----------

def collect_events(timeline: Timeline, ticks_per_beat: int = DEFAULT_TPB):
    """Per channel: [(tick, order, event)], plus the sample triggers [(tick, name)]."""
    per_channel: Dict[int, List[Tuple[int, int, Event]]] = {}
    samples: List[Tuple[int, str]] = []
    for index, ev in timeline.events():
        tick = steps_to_ticks(index, timeline.steps_per_beat, ticks_per_beat)
        if ev.delay_ms:
            tick += ms_to_ticks(ev.delay_ms, timeline.bpm, ticks_per_beat)
        if ev.kind == SAMPLE:
            samples.append((tick, ev.sample))
            continue
        order = 0 if ev.kind == NOTE_OFF else (1 if ev.kind in (CONTROL_CHANGE, PROGRAM_CHANGE) else 2)
        per_channel.setdefault(ev.channel, []).append((tick, order, ev))
    return per_channel, samples

def write_midi(timeline: Timeline, out_path: str, ticks_per_beat: Optional[int] = None):
    """One file: conductor track (tempo/time signature/markers) + one track per channel."""
    tpb = int(ticks_per_beat or DEFAULT_TPB)
    mid = mido.MidiFile(ticks_per_beat=tpb)
    per_channel, samples = collect_events(timeline, tpb)

    t_con = mido.MidiTrack()
    t_con.append(mido.MetaMessage("track_name", name="Conductor", time=0))
    _emit_conductor(t_con, timeline, samples)
    mid.tracks.append(t_con)

    for channel in sorted(per_channel):
        mt = mido.MidiTrack()
        mt.append(mido.MetaMessage("track_name", name=f"Channel {channel + 1}", time=0))
        _emit_track_events(mt, per_channel[channel])
        mid.tracks.append(mt)

    mid.save(out_path)
    return mid
