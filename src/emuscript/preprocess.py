# src/emuscript/preprocess.py
from __future__ import annotations
from typing import Dict, List, Optional
from .errors import Diagnostics, ErrorKind
from .util.text import parse_function

REPEAT_PREVIOUS = "*"
REPEAT_CYCLE = "..."
SILENCE = "."
DEFAULT_MAX_DEPTH = 8

def split_phrases(text: str) -> List[str]:
    return [p for p in text.split("|") if p != ""]

def _phrase_id(phrase: str) -> str:
    return phrase.split("(", 1)[0].strip()

def substitute_sequence(phrase: str, body: str) -> str:
    """Replace arg(i) by the i-th argument of the call, and `args` by the raw argument text."""
    out = body
    call = parse_function(phrase)
    for i, value in enumerate(call[1:]):
        out = out.replace(f"arg({i})", value)
    _, sep, rest = phrase.partition("(")
    rest = rest.strip()
    if sep and rest.endswith(")"):
        out = out.replace("args", rest[:-1])
    return out

def expand_sequences(phrases: List[str], sequences: Dict[str, str],
                     diags: Optional[Diagnostics] = None, line_number: int = 0,
                     max_depth: int = DEFAULT_MAX_DEPTH) -> List[str]:
    result = list(phrases)
    for _ in range(max_depth):
        if not any(_phrase_id(p) in sequences for p in result):
            return result
        expanded: List[str] = []
        for phrase in result:
            seq_id = _phrase_id(phrase)
            if seq_id in sequences:
                expanded.extend(split_phrases(substitute_sequence(phrase, sequences[seq_id])))
            else:
                expanded.append(phrase)
        result = expanded

    # Rekursion zu tief: Rest als Stille stehen lassen
    leftover = [p for p in result if _phrase_id(p) in sequences]
    if leftover:
        if diags is not None:
            diags.add(ErrorKind.SYNTAX_ERROR, _phrase_id(leftover[0]), line_number)
        result = [SILENCE if _phrase_id(p) in sequences else p for p in result]
    return result

def expand_repetitions(phrases: List[str], measure_count: int,
                       diags: Optional[Diagnostics] = None, line_number: int = 0) -> List[str]:
    """
    '*'   -> copy of the previous phrase ('.' when first)
    '...' -> the preceding phrases, cyclically, until the line spans
             `measure_count` measures (trailing phrases included)
    """
    out: List[str] = []
    for i, phrase in enumerate(phrases):
        ident = _phrase_id(phrase)
        if ident == REPEAT_PREVIOUS:
            out.append(out[-1] if out else SILENCE)
        elif ident == REPEAT_CYCLE:
            before = list(out)
            if not before:
                if diags is not None:
                    diags.add(ErrorKind.SYNTAX_ERROR, REPEAT_CYCLE, line_number)
                out.append(SILENCE)
                continue
            after = len(phrases) - i - 1
            k = 0
            while len(out) < measure_count - after:
                out.append(before[k % len(before)])
                k += 1
        else:
            out.append(phrase)
    return out

def preprocess(text: str, sequences: Dict[str, str], measure_count: int,
               diags: Optional[Diagnostics] = None, line_number: int = 0,
               max_depth: int = DEFAULT_MAX_DEPTH) -> List[str]:
    """Instrument line value -> list of phrases, one per measure."""
    phrases = expand_sequences(split_phrases(text), sequences, diags, line_number, max_depth)
    phrases = expand_repetitions(phrases, measure_count, diags, line_number)
    return [p.strip().strip('"') for p in phrases]
