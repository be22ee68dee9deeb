"""Command line entry point."""

import mido
import pytest

from emuscript.cli import main
from emuscript.compiler import DEFAULT_DOCUMENT


def test_writes_midi_next_to_input(tmp_path, capsys) -> None:
    src = tmp_path / "song.emu"
    src.write_text(DEFAULT_DOCUMENT, encoding="utf-8")
    main(["--in", str(src)])
    out = capsys.readouterr().out
    assert "[cli] Done." in out
    assert "notes=8" in out
    assert mido.MidiFile(str(tmp_path / "song.mid")).tracks


def test_check_only(tmp_path) -> None:
    src = tmp_path / "song.emu"
    src.write_text(DEFAULT_DOCUMENT, encoding="utf-8")
    main(["--in", str(src), "--check"])
    assert not (tmp_path / "song.mid").exists()


def test_missing_input_exits_1(tmp_path) -> None:
    with pytest.raises(SystemExit) as exc:
        main(["--in", str(tmp_path / "missing.emu")])
    assert exc.value.code == 1


def test_strict_blocks_on_missing_sections(tmp_path, capsys) -> None:
    src = tmp_path / "bad.emu"
    src.write_text("[intro]\nsynth: 1\n", encoding="utf-8")
    with pytest.raises(SystemExit) as exc:
        main(["--in", str(src), "--strict"])
    assert exc.value.code == 3
    err = capsys.readouterr().err
    assert "The section 'composition' is mandatory and cannot be found" in err
    assert not (tmp_path / "bad.mid").exists()


def test_selection_file_is_written(tmp_path) -> None:
    src = tmp_path / "song.emu"
    src.write_text(DEFAULT_DOCUMENT, encoding="utf-8")
    sel = tmp_path / "selection.yaml"
    main(["--in", str(src), "--check", "--selection", str(sel)])
    assert "synth" in sel.read_text(encoding="utf-8")
