# src/emuscript/playback.py
"""
Device-agnostic playback driver: walks a Timeline in real time and hands each
event to a `send` callable (MIDI port, sample player, test recorder ...).
"""
from __future__ import annotations
import threading
import time
from typing import Callable, Optional, Set, Tuple

from .timeline import Event, Timeline, NOTE_OFF, NOTE_ON

SendFn = Callable[[Event], None]
ProgressFn = Callable[[int], None]

class Sequencer:
    def __init__(self, timeline: Timeline, send: SendFn,
                 progress: Optional[ProgressFn] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.timeline = timeline
        self.send = send
        self.progress = progress
        self.sleep = sleep
        self.clock = clock
        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._sounding: Set[Tuple[int, int]] = set()   # (channel, note)

    # ---------------- control ----------------

    def cancel(self):
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.run, name="emuscript-sequencer", daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: Optional[float] = None):
        if self._thread is not None:
            self._thread.join(timeout)

    # ---------------- dispatch ----------------

    def _dispatch(self, ev: Event):
        if ev.kind == NOTE_ON:
            self._sounding.add((ev.channel, ev.note))
        elif ev.kind == NOTE_OFF:
            self._sounding.discard((ev.channel, ev.note))
        self.send(ev)

    def _release_all(self):
        # nach Abbruch: keine hängenden Noten
        for channel, note in sorted(self._sounding):
            self.send(Event(NOTE_OFF, channel=channel, note=note))
        self._sounding.clear()

    def _play_step(self, index: int, events):
        strummed = sorted((ev for ev in events if ev.delay_ms > 0), key=lambda e: e.delay_ms)
        for ev in events:
            if ev.delay_ms > 0:
                continue
            if not self.cancelled or ev.kind == NOTE_OFF:
                self._dispatch(ev)

        elapsed_ms = 0.0
        for ev in strummed:
            if self.cancelled:
                break
            self.sleep((ev.delay_ms - elapsed_ms) / 1000.0)
            elapsed_ms = ev.delay_ms
            self._dispatch(ev)

    def run(self) -> int:
        """Blocking playback. Returns the number of steps played."""
        step_duration = self.timeline.step_duration()
        played = 0
        for index, events in enumerate(self.timeline.steps):
            if self.cancelled:
                break
            started = self.clock()
            if events and self.progress is not None:
                self.progress(index)
            self._play_step(index, events)
            played += 1
            if self.cancelled:
                break
            remaining = step_duration - (self.clock() - started)
            if remaining > 0:
                self.sleep(remaining)

        if self.cancelled:
            self._release_all()
        if self.progress is not None:
            self.progress(-1)
        return played
