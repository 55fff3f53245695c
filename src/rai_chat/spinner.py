from __future__ import annotations

import sys
import threading
from typing import TextIO

from loguru import logger

_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"


class Spinner:
    """Status line animated in place on ``out``.

    The first frame is drawn by ``start`` itself; a daemon thread redraws
    every ``interval`` seconds until ``stop`` blanks the line and leaves the
    cursor right after ``prefix``.
    """

    def __init__(
        self,
        *,
        prefix: str = "",
        label: str = " Thinking...",
        out: TextIO | None = None,
        interval: float = 0.08,
    ) -> None:
        self._prefix = prefix
        self._label = label
        self._out = out if out is not None else sys.stdout
        self._interval = interval
        self._halted = threading.Event()
        self._worker: threading.Thread | None = None
        self._frame = 0

    def start(self) -> None:
        if self._worker is not None:
            return
        self._draw()
        self._worker = threading.Thread(target=self._animate, name="rai-chat-spinner", daemon=True)
        self._worker.start()

    def stop(self) -> None:
        if self._worker is None or self._halted.is_set():
            return
        self._halted.set()
        self._worker.join()
        blank = " " * (len(self._prefix) + 1 + len(self._label))
        self._emit(f"\r{blank}\r{self._prefix}")

    def _animate(self) -> None:
        while not self._halted.wait(self._interval):
            self._draw()

    def _draw(self) -> None:
        glyph = _FRAMES[self._frame % len(_FRAMES)]
        self._frame += 1
        self._emit(f"\r{self._prefix}{glyph}{self._label}")

    def _emit(self, text: str) -> None:
        try:
            self._out.write(text)
            self._out.flush()
        except (UnicodeEncodeError, OSError) as ex:
            logger.debug(f"Spinner output failed: {ex}")
