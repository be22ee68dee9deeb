from __future__ import annotations
from typing import Dict, List

BRACKETS = "()[]{}"
QUOTES = "\"'"

def tokenize(text: str) -> List[str]:
    """Split on whitespace; brackets are tokens of their own."""
    tokens: List[str] = []
    token = ""
    for c in text:
        if c.isspace():
            if token:
                tokens.append(token)
                token = ""
        elif c in BRACKETS:
            if token:
                tokens.append(token)
            tokens.append(c)
            token = ""
        else:
            token += c
    if token:
        tokens.append(token)
    return tokens

def parse_function(text: str) -> List[str]:
    """'arp(1 2 3)' -> ['arp', '1', '2', '3'];  [] if text is not a single call."""
    head, sep, rest = text.strip().partition("(")
    if not sep or "(" in rest:
        return []
    inner, sep, tail = rest.partition(")")
    if not sep or tail.strip():
        return []
    args = [a for a in inner.replace(",", " ").split() if a]
    return [head.strip()] + args

def to_number(text: str) -> int:
    try:
        return int(text.strip())
    except ValueError:
        return 0

def is_number(text: str) -> bool:
    try:
        int(text.strip())
        return True
    except ValueError:
        return False

def to_cc_value(text: str) -> int:
    # "5.0" = scale 0..10
    text = text.strip()
    if "." in text:
        try:
            return int(float(text) * 127) // 10
        except ValueError:
            return 0
    return to_number(text)

def parse_cc(text: str) -> Dict[str, int]:
    """'volume=7, pan=10' -> {'volume': 7, 'pan': 10}"""
    out: Dict[str, int] = {}
    for item in text.split(","):
        parts = [p for p in item.split("=") if p != ""]
        if len(parts) == 2:
            out[parts[0].strip()] = to_cc_value(parts[1])
    return out

def strip_quotes(text: str) -> str:
    return text.strip().strip(QUOTES)

def split_outside_parens(text: str, separator: str = ",") -> List[str]:
    """Split on `separator`, ignoring separators inside parentheses; drops empty items."""
    out: List[str] = []
    depth = 0
    item = ""
    for c in text:
        if c == "(":
            depth += 1
        elif c == ")":
            depth = max(0, depth - 1)
        if c == separator and depth == 0:
            if item.strip():
                out.append(item)
            item = ""
        else:
            item += c
    if item.strip():
        out.append(item)
    return out
