"""Timeline compiler: note on/off placement, ties, ornaments, section joins."""

from emuscript.compiler import compile
from emuscript.process import build_section_events, build_timeline
from emuscript.timeline import (
    Composition, Instrument, Measure, MusicalSection, PlaylistItem, Step, StepKind, Strum,
    NOTE_OFF, NOTE_ON, SAMPLE,
)

HEADER = """\
[composition]
time: 4/4
BPM: 120
playlist: {playlist}

[instruments]
synth: "MIDI Input", channel=1, octave=3, velocity=100
drums: "MIDI Input", channel=10

[sounds]
up: arp(1 2), step=3, duration=2
down: strum(3 2 1), msec=10, vdec=10
kick: sample("kick.wav"), volume=50
"""


def timeline_of(body: str, playlist: str = "intro"):
    result = compile(HEADER.format(playlist=playlist) + body)
    assert len(result.diagnostics) == 0, [d.message_and_line() for d in result.diagnostics]
    return result.timeline


def at(timeline, kind):
    return [(i, ev.note) for i, ev in timeline.events() if ev.kind == kind]


def test_note_on_and_off_positions() -> None:
    tl = timeline_of("[intro]\nsynth: 1 2 3 4\n")
    assert at(tl, NOTE_ON) == [(0, 60), (12, 62), (24, 64), (36, 65)]
    assert at(tl, NOTE_OFF) == [(12, 60), (24, 62), (36, 64), (48, 65)]
    assert len(tl) == 49
    assert tl.step_duration() == 60.0 / 120 / 12


def test_interval_emits_all_pitches() -> None:
    tl = timeline_of("[intro]\nsynth: 1/5 . . .\n")
    assert at(tl, NOTE_ON) == [(0, 60), (0, 67)]
    assert at(tl, NOTE_OFF) == [(12, 60), (12, 67)]


def test_tie_across_measure_has_single_note_off() -> None:
    tl = timeline_of("[intro]\nsynth: 1 2 3 4 | - 5 6 7\n")
    offs = [i for i, note in at(tl, NOTE_OFF) if note == 65]
    ons = [i for i, note in at(tl, NOTE_ON) if note == 65]
    assert ons == [36]
    assert offs == [60]


def test_same_measure_tie_delays_note_off() -> None:
    tl = timeline_of("[intro]\nsynth: 1 - 2 3\n")
    assert at(tl, NOTE_OFF)[0] == (24, 60)


def test_arpeggio_unrolling() -> None:
    tl = timeline_of("[intro]\nsynth: 13/up . . .\n")
    assert at(tl, NOTE_ON) == [(0, 60), (3, 64), (6, 60), (9, 64)]
    arp_offs = [(i, n) for i, n in at(tl, NOTE_OFF) if i < 12]
    assert arp_offs == [(2, 60), (5, 64), (8, 60), (11, 64)]


def test_arpeggio_over_tied_steps() -> None:
    tl = timeline_of("[intro]\nsynth: . . . 13/up | - . . .\n")
    # 12 + 12 tied steps from index 36, last note-on before 36 + 24 - 2
    ons = [i for i, _ in at(tl, NOTE_ON)]
    assert ons == [36, 39, 42, 45, 48, 51, 54, 57]


def test_strum_delays_and_velocity_decay() -> None:
    tl = timeline_of("[intro]\nsynth: 135/down . . .\n")
    ons = [ev for i, ev in tl.events() if ev.kind == NOTE_ON]
    assert [ev.note for ev in ons] == [67, 64, 60]
    assert [ev.delay_ms for ev in ons] == [0.0, 10.0, 20.0]
    assert [ev.velocity for ev in ons] == [100, 90, 81]
    assert all(i == 0 for i, ev in tl.events() if ev.kind == NOTE_ON)
    assert sorted(n for i, n in at(tl, NOTE_OFF) if i == 12) == [60, 64, 67]


def test_strum_velocity_floor() -> None:
    comp = Composition(instruments=[Instrument("synth", octave=3)], playlist=[PlaylistItem("a")])
    strum = Strum((1, 2, 3), 5, 10)
    step = Step(kind=StepKind.SYNTH, pitches=(60, 64, 67), velocity=21, length=48, ornament=strum)
    comp.sections.append(MusicalSection("a", {"synth": [Measure((step,))]}))
    tl = build_timeline(comp)
    assert [ev.velocity for _, ev in tl.events() if ev.kind == NOTE_ON] == [21, 20, 20]


def test_drums_and_samples() -> None:
    body = "[intro]\ndrums: bh . s .\nfx: kick . . .\n"
    text = HEADER.format(playlist="intro").replace("drums: \"MIDI Input\", channel=10\n",
                                                   "drums: \"MIDI Input\", channel=10\nfx: sample\n")
    result = compile(text + body)
    tl = result.timeline
    drum_ons = [(i, ev.note, ev.channel) for i, ev in tl.events() if ev.kind == NOTE_ON]
    assert drum_ons == [(0, 36, 9), (0, 42, 9), (24, 38, 9)]
    (sample,) = [ev for _, ev in tl.events() if ev.kind == SAMPLE]
    assert sample.sample == "kick"
    assert sample.path == "kick.wav"
    assert sample.volume == 100 * 50 // 100


def test_error_steps_emit_nothing() -> None:
    result = compile(HEADER.format(playlist="intro") + "[intro]\nsynth: 1 9 9 9\n")
    assert at(result.timeline, NOTE_ON) == [(0, 60)]


def test_sections_are_joined() -> None:
    tl = timeline_of("[a]\nsynth: 1 2 3 4\n[b]\nsynth: 5 6 7 1'\n", playlist="a, b")
    assert len(tl) == 97
    # note-off of the last note of a shares the slot with the first note-on of b
    assert [(ev.kind, ev.note) for ev in tl[48]] == [(NOTE_OFF, 65), (NOTE_ON, 67)]
    assert tl.last_event_index() == 96


def test_section_repeated_in_playlist() -> None:
    tl = timeline_of("[a]\nsynth: 1 2 3 4\n", playlist="a, a")
    assert tl.note_on_count() == 8
    assert len(tl) == 97


def test_section_array_size() -> None:
    comp = Composition(instruments=[Instrument("synth", octave=3)])
    section = MusicalSection("a", {"synth": [Measure((Step(length=48),)), Measure((Step(length=48),))]})
    slots = build_section_events(comp, section)
    assert len(slots) == 2 * 48 + 1
    assert all(not s for s in slots)


def test_unselected_instrument_is_silent() -> None:
    comp = compile(HEADER.format(playlist="intro") + "[intro]\nsynth: 1 2 3 4\n").composition
    comp.instruments[0].selected = False
    assert build_timeline(comp).note_on_count() == 0


def test_overfull_measure_does_not_shift_next_section() -> None:
    text = HEADER.format(playlist="a, b") + "[a]\nsynth: " + " ".join(["1"] * 50) + "\n[b]\nsynth: 5 . . .\n"
    tl = compile(text).timeline
    assert (48, 67) in at(tl, NOTE_ON)
    assert len(tl) == 97
    # overhang of a lands in the leading slots of b
    assert (50, 60) in at(tl, NOTE_OFF)
    assert [i for i, n in at(tl, NOTE_ON) if n == 60] == list(range(50))
