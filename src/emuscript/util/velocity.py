from __future__ import annotations

def _clamp(v: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, v))

def clamp(v: int) -> int:
    """MIDI data byte range 0..127."""
    return _clamp(int(v), 0, 127)

def adjust_velocity(current: int, text: str) -> int:
    """
    '90'  -> absolute value
    '+10' / '-10' -> relative to `current`
    """
    text = text.strip()
    try:
        value = int(text)
    except ValueError:
        return clamp(current)
    if "+" in text or "-" in text:
        return clamp(current + value)
    return clamp(value)

def decay(v: int, percent: int, floor: int = 20) -> int:
    """One strum step: v - v*percent//100, never below `floor`."""
    return max(floor, v - v * percent // 100)
