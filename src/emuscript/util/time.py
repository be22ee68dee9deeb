from __future__ import annotations
from typing import Dict, Optional, Tuple

# time signature -> (beats per measure, steps per beat)
TIME_SIGNATURES: Dict[str, Tuple[int, int]] = {
    "2/4": (2, 12),
    "3/4": (3, 12),
    "4/4": (4, 12),
    "5/4": (5, 12),
    "5/8": (5, 6),
    "6/8": (6, 6),
    "7/8": (7, 6),
}

def time_signature_grid(signature: str) -> Optional[Tuple[int, int]]:
    return TIME_SIGNATURES.get(signature.strip())

def steps_to_ticks(steps: int, steps_per_beat: int, tpb: int) -> int:
    if steps_per_beat <= 0:
        steps_per_beat = 12
    return int(round(steps * (tpb / steps_per_beat)))

def ms_to_ticks(ms: float, bpm: int, tpb: int) -> int:
    if bpm <= 0:
        return 0
    return int(round(ms / 1000.0 * bpm / 60.0 * tpb))
