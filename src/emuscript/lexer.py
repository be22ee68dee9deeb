# src/emuscript/lexer.py
"""
Section parser for EMU-Script text.

- Section headers are enclosed in square brackets: ``[intro]``
- Keys and values are separated by the first colon
- A value can continue on the following lines (each continuation becomes
  its own TextLine under the same key)
- ``//`` starts a comment
- ``[verse2]`` starts with a copy of the lines of ``[verse]``
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from .errors import Diagnostics, ErrorKind

KEY_CHARS = "_-"
PATH_CHARS = "_-."

def _is_word_char(c: str, extra: str) -> bool:
    return c.isascii() and (c.isalnum() or c in extra)

def _is_identifier(text: str, extra: str) -> bool:
    if not text or not (text[0].isascii() and text[0].isalpha()):
        return False
    return all(_is_word_char(c, extra) for c in text[1:])

def is_valid_section_name(name: str) -> bool:
    return _is_identifier(name, KEY_CHARS)

def is_keyword(key: str) -> bool:
    return _is_identifier(key, KEY_CHARS)

def is_path(key: str) -> bool:
    body = key[1:] if key.startswith("/") else key
    segments = body.split("/")
    if len(segments) < 2 or any(s == "" for s in segments):
        return False
    if not (segments[0][0].isascii() and segments[0][0].isalpha()):
        return False
    return all(_is_word_char(c, PATH_CHARS) for s in segments for c in s)

def is_valid_key(key: str) -> bool:
    return is_keyword(key) or is_path(key)

def parent_name(name: str) -> Optional[str]:
    """'verse2' -> 'verse'"""
    if len(name) > 1 and name[-1].isdigit():
        return name[:-1]
    return None

@dataclass(frozen=True)
class TextLine:
    key: str
    value: str
    line_number: int

    def path(self) -> List[str]:
        return [p for p in self.key.split("/") if p]

    def values(self, separator: str) -> List[str]:
        return [v for v in self.value.split(separator) if v]

@dataclass
class Section:
    name: str
    line_number: int
    lines: List[TextLine] = field(default_factory=list)

    def line_number_of(self, key: str) -> int:
        for line in self.lines:
            if line.key == key:
                return line.line_number
        return 0

    def move_first(self, key: str) -> "Section":
        first = [l for l in self.lines if l.key == key]
        rest = [l for l in self.lines if l.key != key]
        return Section(self.name, self.line_number, first + rest)

def find_section(sections: List[Section], name: str) -> Optional[Section]:
    for section in sections:
        if section.name == name:
            return section
    return None

def _strip_comment(line: str) -> str:
    if line.startswith("//"):
        return ""
    return line.split("//", 1)[0].strip()

def parse_sections(text: str) -> Tuple[List[Section], Diagnostics]:
    sections: List[Section] = []
    diags = Diagnostics()
    section: Optional[Section] = None
    key = ""

    def close(sec: Optional[Section]):
        if sec is None:
            return
        sections.append(sec)
        if not is_valid_section_name(sec.name):
            diags.add(ErrorKind.INVALID_SECTION_NAME, sec.name, sec.line_number)

    def add_line(k: str, v: str, n: int):
        section.lines.append(TextLine(k, v, n))
        if not is_valid_key(k):
            diags.add(ErrorKind.INVALID_KEY, k, n)

    for n, raw in enumerate(text.split("\n"), start=1):
        line = _strip_comment(raw.strip())

        # --- Section header ---
        if line.startswith("[") and line.endswith("]"):
            close(section)
            name = line[1:-1].strip()
            section = Section(name, n)
            key = ""
            # Vererbung: verse2 erbt alle Zeilen von verse
            parent = parent_name(name)
            if parent is not None:
                base = find_section(sections, parent)
                if base is not None:
                    section.lines.extend(base.lines)
            continue

        if section is not None and ":" in line:
            k, _, v = line.partition(":")
            key = k.strip()
            add_line(key, v.strip(), n)
        elif section is not None and line and key:
            add_line(key, line, n)
        elif line:
            diags.add(ErrorKind.UNEXPECTED_TEXT_OUTSIDE_SECTION, line, n)

    close(section)
    return sections, diags
