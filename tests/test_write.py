"""MIDI export via mido."""

import mido

from emuscript.compiler import DEFAULT_DOCUMENT, compile
from emuscript.timeline import Event, Timeline, CONTROL_CHANGE, NOTE_OFF, NOTE_ON, PROGRAM_CHANGE, SAMPLE
from emuscript.write import collect_events, to_mido_message, write_midi


def test_to_mido_message_notes_and_controllers() -> None:
    (on,) = to_mido_message(Event(NOTE_ON, channel=2, note=60, velocity=90))
    assert (on.type, on.channel, on.note, on.velocity) == ("note_on", 2, 60, 90)
    (off,) = to_mido_message(Event(NOTE_OFF, channel=2, note=60))
    assert off.type == "note_off"
    (cc,) = to_mido_message(Event(CONTROL_CHANGE, channel=0, control=7, value=100))
    assert (cc.type, cc.control, cc.value) == ("control_change", 7, 100)
    assert to_mido_message(Event(SAMPLE, sample="kick")) == []


def test_program_change_with_bank_select() -> None:
    bank, program = to_mido_message(Event(PROGRAM_CHANGE, channel=1, program=4, bank=2), time=10)
    assert (bank.type, bank.control, bank.value, bank.time) == ("control_change", 0, 2, 10)
    assert (program.type, program.program, program.time) == ("program_change", 4, 0)


def test_strum_delay_in_ticks() -> None:
    timeline = Timeline(
        steps=((Event(NOTE_ON, note=60, velocity=80), Event(NOTE_ON, note=64, velocity=80, delay_ms=10.0)),),
        bpm=120,
    )
    per_channel, samples = collect_events(timeline, ticks_per_beat=960)
    ticks = [tick for tick, _, _ in per_channel[0]]
    # 10 ms at 120 BPM = 0.02 beats
    assert ticks == [0, 19]
    assert samples == []


def test_write_midi_file(tmp_path) -> None:
    result = compile(DEFAULT_DOCUMENT)
    path = tmp_path / "song.mid"
    write_midi(result.timeline, str(path), ticks_per_beat=480)

    mid = mido.MidiFile(str(path))
    assert mid.ticks_per_beat == 480
    assert len(mid.tracks) == 2

    conductor = mid.tracks[0]
    tempo = [m for m in conductor if m.type == "set_tempo"]
    assert tempo[0].tempo == 500000
    sig = [m for m in conductor if m.type == "time_signature"]
    assert (sig[0].numerator, sig[0].denominator) == (4, 4)

    notes = [m for m in mid.tracks[1] if m.type == "note_on"]
    assert [m.note for m in notes] == [60, 62, 64, 65, 67, 69, 71, 72]
    # absolute time of the last note-off = 2 measures of 4 beats
    total = sum(m.time for m in mid.tracks[1])
    assert total == 8 * 480
