from __future__ import annotations
import argparse, pathlib, sys, traceback
from . import compiler, write
from .config import get_ticks_per_beat, load_config
from .errors import ScriptLoadError
from .selection import load_selection, save_selection

def main(argv=None):
    p = argparse.ArgumentParser(description="EMU-Script -> MIDI")
    p.add_argument("--in", dest="infile", required=True, help="Input script (.emu / .txt)")
    p.add_argument("--out", dest="outfile", required=False, help="Output MIDI file (.mid), default: input name + .mid")
    p.add_argument("--config", dest="config", default=None, help="YAML config (defaults applied if omitted)")
    p.add_argument("--selection", dest="selection", default=None, help="YAML file with the enabled instruments/playlist items")
    p.add_argument("--check", action="store_true", help="Only compile and report diagnostics")
    p.add_argument("--strict", action="store_true", help="Exit with code 3 on blocking diagnostics")

    args = p.parse_args(argv)

    in_path = pathlib.Path(args.infile).expanduser().resolve()
    try:
        text = compiler.load_text(in_path)
    except ScriptLoadError as e:
        print(f"[cli] ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    cfg = load_config(args.config)
    print(f"[cli] infile = {in_path}")

    sel_path = pathlib.Path(args.selection).expanduser().resolve() if args.selection else None
    prior = load_selection(sel_path) if sel_path else None

    try:
        result = compiler.compile(text, prior, cfg)
    except Exception:
        traceback.print_exc()
        sys.exit(2)

    for d in result.diagnostics:
        tag = "ERROR" if d.is_blocking() else "WARNING"
        print(f"[cli] {tag}: {d.message_and_line()}", file=sys.stderr)

    if sel_path:
        save_selection(sel_path, result.selection)
        print(f"[cli] selection -> {sel_path}")

    if args.strict and result.diagnostics.has_blocking():
        print("[cli] blocking diagnostics, no output written", file=sys.stderr)
        sys.exit(3)

    if not args.check:
        out_path = pathlib.Path(args.outfile).expanduser().resolve() if args.outfile else in_path.with_suffix(".mid")
        try:
            write.write_midi(result.timeline, str(out_path), get_ticks_per_beat(cfg))
        except Exception:
            traceback.print_exc()
            sys.exit(2)
        print(f"[cli] midi      -> {out_path}")

    comp = result.composition
    print(f"[cli] Done. sections={len(comp.sections)} measures={comp.measures_count()} "
          f"notes={result.timeline.note_on_count()} diagnostics={len(result.diagnostics)}")

if __name__ == "__main__":
    main()
