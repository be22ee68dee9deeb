"""End-to-end compile: document loading, diagnostics, selection merge."""

import pytest

from emuscript.compiler import DEFAULT_DOCUMENT, compile, load_text
from emuscript.errors import ErrorKind, ScriptLoadError
from emuscript.selection import SelectionState
from emuscript.timeline import ControlMessage, NOTE_ON, PROGRAM_CHANGE, StepKind

HEADER = """\
[composition]
time: {time}
BPM: 100
playlist: {playlist}
{extra}
[instruments]
synth: "MIDI Input", channel=2, octave=3, velocity=80
drums: "MIDI Input", channel=10
"""


def doc(body: str, playlist: str = "intro", time: str = "4/4", extra: str = "") -> str:
    return HEADER.format(time=time, playlist=playlist, extra=extra) + body


def test_default_document() -> None:
    result = compile(DEFAULT_DOCUMENT)
    assert len(result.diagnostics) == 0
    assert result.timeline.note_on_count() == 8
    assert result.timeline.last_event_index() == 2 * 48
    comp = result.composition
    assert comp.title == "Untitled"
    assert comp.author == "Someone"
    assert comp.bpm == 120
    assert comp.measures_count() == 2


def test_instruments_section() -> None:
    comp = compile(doc("[intro]\nsynth: 1\n")).composition
    synth, drums = comp.instruments
    assert synth.endpoint == "MIDI Input"
    assert synth.channel == 1
    assert synth.octave == 3 and synth.midi_octave() == 5
    assert synth.velocity == 80
    assert drums.channel == 9
    assert drums.is_drum()


def test_sampler_instrument() -> None:
    text = (
        HEADER.format(time="4/4", playlist="intro", extra="")
        + "fx: sample\n"
        + "[sounds]\nkick: sample(\"kick.wav\"), volume=50\n"
        + "[intro]\nfx: kick . kick .\n"
    )
    result = compile(text)
    fx = result.composition.get_instrument("fx")
    assert fx.is_sampler()
    assert result.composition.samples["kick"].path == "kick.wav"
    assert result.composition.samples["kick"].volume == 50


def test_time_signature_grid() -> None:
    comp = compile(doc("[intro]\nsynth: 1 2 3 4 5 6\n", time="6/8")).composition
    assert (comp.beats_per_measure, comp.steps_per_beat) == (6, 6)
    steps = comp.get_section("intro").get_measures("synth")[0].steps
    assert [s.length for s in steps] == [6] * 6


def test_unsupported_time_signature_falls_back() -> None:
    result = compile(doc("[intro]\nsynth: 1\n", time="9/8"))
    assert result.diagnostics.kinds() == [ErrorKind.UNSUPPORTED_TIME_SIGNATURE]
    assert result.composition.time_signature == "4/4"
    assert result.composition.steps_per_measure == 48


def test_invalid_transposition_and_keywords() -> None:
    result = compile(doc("[intro]\nsynth: 1\n", extra="transposition: 9\ncolour: blue\nBPM: fast\ninfo: ignored"))
    assert result.diagnostics.kinds() == [
        ErrorKind.INVALID_TRANSPOSITION,
        ErrorKind.UNEXPECTED_KEYWORD,
        ErrorKind.SYNTAX_ERROR,
    ]
    assert result.composition.bpm == 100


def test_missing_sections_are_blocking() -> None:
    result = compile("[intro]\nsynth: 1\n")
    assert result.diagnostics.kinds() == [ErrorKind.MISSING_SECTION, ErrorKind.MISSING_SECTION]
    assert result.diagnostics.has_blocking()
    assert not result.ok
    assert len(result.timeline) == 0


def test_undefined_playlist_section() -> None:
    result = compile(doc("[intro]\nsynth: 1\n", playlist="intro, outro"))
    (d,) = list(result.diagnostics)
    assert d.kind is ErrorKind.UNDEFINED_SECTION
    assert d.info == "outro"
    assert d.line_number == 4
    assert d.message_and_line() == "The section 'outro' cannot be found (Error at line 4)"
    # the defined section still compiles
    assert result.timeline.note_on_count() == 1


def test_notation_errors_are_warnings() -> None:
    result = compile(doc("[intro]\nsynth: 1 9 3 4\n"))
    assert result.diagnostics.kinds() == [ErrorKind.INVALID_NOTE]
    assert result.ok
    assert result.timeline.note_on_count() == 3


def test_sequences_and_repetitions() -> None:
    text = doc(
        "[intro]\ndrums: b b b b | * | *\nsynth: riff(5) | ...\n",
        extra="",
    ) + "[sequences]\nriff: 1 arg(0) 1 arg(0)\n"
    comp = compile(text).composition
    section = comp.get_section("intro")
    assert section.length() == 3
    synth = section.get_measures("synth")
    assert [s.pitches for s in synth[2].steps] == [(60,), (67,), (60,), (67,)]
    assert len(section.get_measures("drums")) == 3


def test_variant_section_inherits() -> None:
    text = doc("[verse]\nsynth: 1 2 3 4\n[verse2]\ndrums: b s b s\n", playlist="verse, verse2")
    comp = compile(text).composition
    verse2 = comp.get_section("verse2")
    assert set(verse2.measures) == {"synth", "drums"}


def test_chord_line_is_encoded_first() -> None:
    text = doc("[intro]\nsynth: chord root\nchord: 4M 5M\n")
    result = compile(text)
    assert len(result.diagnostics) == 0
    steps = result.composition.get_section("intro").get_measures("synth")[0].steps
    assert steps[0].pitches == (65, 69, 72)
    assert steps[1].pitches == (67,)


def test_control_section() -> None:
    text = doc(
        "[intro]\nsynth: 1 2 | 3 4\n",
        extra="cc: volume=7",
    ) + "[control]\nsynth/intro/program: 1.5\nsynth/intro/2..2/velocity: +10\nsynth/cc: volume=100\n"
    result = compile(text)
    assert len(result.diagnostics) == 0
    measures = result.composition.get_section("intro").get_measures("synth")
    first = measures[0].steps[0]
    assert first.control_messages == (ControlMessage.program(1, 5), ControlMessage.controller(7, 100))
    assert [s.velocity for s in measures[0].steps] == [80, 80]
    assert [s.velocity for s in measures[1].steps] == [90, 90]

    kinds = [ev.kind for ev in result.timeline[0]]
    assert kinds[:2] == [PROGRAM_CHANGE, "control_change"]


def test_control_for_instrument_without_measures() -> None:
    text = doc("[intro]\nsynth: 1\n") + "[control]\ndrums/program: 1.1\n"
    result = compile(text)
    (measure,) = result.composition.get_section("intro").get_measures("drums")
    (step,) = measure.steps
    assert step.kind is StepKind.SILENCE
    assert step.control_messages == (ControlMessage.program(1, 1),)


def test_control_errors() -> None:
    text = doc("[intro]\nsynth: 1\n") + "[control]\nsynth/nowhere/velocity: 10\nsynth/pitch: 3\nsynth/cc: foo=1\n"
    kinds = compile(text).diagnostics.kinds()
    assert kinds == [
        ErrorKind.UNDEFINED_SECTION,
        ErrorKind.UNEXPECTED_KEYWORD,
        ErrorKind.UNEXPECTED_KEYWORD,
    ]


def test_prior_selection_is_restored_by_position() -> None:
    text = doc("[intro]\nsynth: 1 2\ndrums: b b\n")
    first = compile(text)
    assert first.selection.instruments == (("synth", True), ("drums", True))

    prior = first.selection.with_instrument("synth", False)
    second = compile(text, prior)
    assert second.selection.instruments == (("synth", False), ("drums", True))
    notes = {ev.note for _, ev in second.timeline.events() if ev.kind == NOTE_ON}
    assert notes == {36}


def test_selection_ignored_when_names_moved() -> None:
    prior = SelectionState(instruments=(("drums", False), ("synth", False)))
    result = compile(doc("[intro]\nsynth: 1\n"), prior)
    assert result.selection.instruments == (("synth", True), ("drums", True))


def test_disabled_playlist_item() -> None:
    text = doc("[a]\nsynth: 1\n[b]\nsynth: 2\n", playlist="a, b")
    prior = SelectionState(playlist=(("a", False), ("b", True)))
    result = compile(text, prior)
    notes = [ev.note for _, ev in result.timeline.events() if ev.kind == NOTE_ON]
    assert notes == [62]
    assert len(result.timeline) == 49


def test_compile_is_repeatable() -> None:
    a = compile(DEFAULT_DOCUMENT)
    b = compile(DEFAULT_DOCUMENT)
    assert a.timeline == b.timeline
    assert a.timeline is not b.timeline


def test_load_text(tmp_path) -> None:
    path = tmp_path / "song.emu"
    path.write_text(DEFAULT_DOCUMENT, encoding="utf-8")
    assert load_text(path) == DEFAULT_DOCUMENT

    with pytest.raises(ScriptLoadError):
        load_text(tmp_path / "missing.emu")

    binary = tmp_path / "binary.emu"
    binary.write_bytes(b"\xff\xfe\x00\x81")
    with pytest.raises(ScriptLoadError):
        load_text(binary)
