"""Read a timeline aloud.

The controller walks a list of TimelineItems, handing one utterance at a
time to a SpeechEngine and advancing from the engine's completion callback.
Each ``play``/``stop`` bumps a generation number; callbacks that captured an
older generation do nothing.
"""

import logging
import re
from collections.abc import Callable
from typing import Protocol

import pyttsx3

from .models import TimelineItem

logger = logging.getLogger(__name__)

URL_RE = re.compile(r"https?://\S+")


class SpeechEngine(Protocol):
    def speak(
        self,
        text: str,
        on_start: Callable[[], None] | None = None,
        on_done: Callable[[], None] | None = None,
        on_stopped: Callable[[], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None: ...

    def stop(self) -> None: ...


def _normalize_handle(handle: str | None) -> str:
    handle = (handle or "").strip()
    if not handle:
        return "Unknown user"
    return handle if handle.startswith("@") else f"@{handle}"


def build_speech_text(item: TimelineItem) -> str:
    """``@handle says: text`` with URLs removed and whitespace collapsed."""
    body = " ".join(URL_RE.sub("", item.text or "").split())
    return f"{_normalize_handle(item.author_handle)} says: {body or 'No text available.'}"


class SpeechQueueController:
    def __init__(
        self,
        engine: SpeechEngine,
        text_builder: Callable[[TimelineItem], str] = build_speech_text,
        on_index_change: Callable[[int, TimelineItem], None] | None = None,
        on_done: Callable[[], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ):
        self.engine = engine
        self.text_builder = text_builder
        self.on_index_change = on_index_change
        self.on_done = on_done
        self.on_error = on_error
        self.items: list[TimelineItem] = []
        self.current_index = 0
        self.is_playing = False
        self._generation = 0

    def play(self, items: list[TimelineItem], start_index: int = 0) -> None:
        self.items = list(items)
        self._start_at(start_index)

    def resume(self) -> None:
        if self.items:
            self._start_at(self.current_index)

    def stop(self) -> None:
        self._generation += 1
        self.engine.stop()
        self.is_playing = False

    def update_items(self, items: list[TimelineItem]) -> None:
        """Swap the queue, e.g. after another page was appended."""
        self.items = list(items)
        if self.current_index > len(self.items) - 1:
            self.current_index = max(0, len(self.items) - 1)

    def _start_at(self, index: int) -> None:
        if not self.items:
            self.current_index = 0
            self.is_playing = False
            return

        index = max(0, min(index, len(self.items) - 1))
        self._generation += 1
        self.engine.stop()
        self.is_playing = True
        self.current_index = index
        self._speak_index(index, self._generation)

    def _finish(self, generation: int) -> None:
        if generation != self._generation:
            return
        self.is_playing = False
        if self.on_done:
            self.on_done()

    def _speak_index(self, index: int, generation: int) -> None:
        # Blocking engines finish inside speak(); loop instead of recursing.
        while index < len(self.items) and generation == self._generation:
            if not self._speak_one(index, generation):
                return
            index += 1
        self._finish(generation)

    def _speak_one(self, index: int, generation: int) -> bool:
        """Hand one item to the engine.

        Returns True when the engine already finished it and the caller should
        move on to the next item.
        """
        item = self.items[index]
        finished_inline = False
        speaking = True

        def started() -> None:
            if generation != self._generation:
                return
            self.current_index = index
            if self.on_index_change:
                self.on_index_change(index, item)

        def done() -> None:
            nonlocal finished_inline
            if generation != self._generation:
                return
            if speaking:
                finished_inline = True
            else:
                self._speak_index(index + 1, generation)

        def stopped() -> None:
            if generation == self._generation:
                self.is_playing = False

        def failed(error: Exception) -> None:
            if generation != self._generation:
                return
            self.is_playing = False
            logger.error("Speech failed on item %d: %s", index, error)
            if self.on_error:
                self.on_error(error)

        self.engine.speak(
            self.text_builder(item),
            on_start=started,
            on_done=done,
            on_stopped=stopped,
            on_error=failed,
        )
        speaking = False
        return finished_inline


class Pyttsx3SpeechEngine:
    """Blocking SpeechEngine backed by the platform's TTS via pyttsx3."""

    def __init__(self, rate: int | None = None):
        self._engine = pyttsx3.init()
        if rate:
            self._engine.setProperty("rate", rate)
        self._stopped = False

    def speak(self, text, on_start=None, on_done=None, on_stopped=None, on_error=None):
        self._stopped = False
        if on_start:
            on_start()
        try:
            self._engine.say(text)
            self._engine.runAndWait()
        except RuntimeError as e:
            if on_error:
                on_error(e)
                return
            raise
        if self._stopped:
            if on_stopped:
                on_stopped()
        elif on_done:
            on_done()

    def stop(self) -> None:
        self._stopped = True
        self._engine.stop()
