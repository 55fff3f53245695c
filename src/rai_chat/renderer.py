from __future__ import annotations

import sys
from collections.abc import Callable
from typing import TextIO

from rai_chat.spinner import Spinner
from rai_chat.transcript import ASSISTANT, Message, Transcript

RETRY_HINT = "(type /retry to try again)"


class TerminalRenderer:
    """Writes assistant replies to a terminal as they grow.

    Called with every new transcript; only text not yet written is printed.
    The status text is shown through a spinner until the reply starts.
    """

    def __init__(
        self,
        *,
        line_prefix: str = "assistant> ",
        out: TextIO | None = None,
        spinner_factory: Callable[..., Spinner] = Spinner,
    ) -> None:
        self._line_prefix = line_prefix
        self._out = out if out is not None else sys.stdout
        self._spinner_factory = spinner_factory
        self._spinner: Spinner | None = None
        self._spinner_label: str | None = None
        self._prefix_on_line = False
        self._mid_reply = False
        self._printed: dict[str, int] = {}
        self._finished: set[str] = set()

    def __call__(self, transcript: Transcript) -> None:
        self.render(transcript)

    def render(self, transcript: Transcript) -> None:
        for message in transcript.messages:
            if message.role != ASSISTANT or message.id in self._finished:
                continue
            self._render_reply(transcript, message)
        self._update_status(transcript.status)

    def close(self) -> None:
        self._stop_spinner()

    def _render_reply(self, transcript: Transcript, message: Message) -> None:
        printed = self._printed.get(message.id)
        if printed is None:
            self._begin_line()
            printed = 0
        new_text = message.content[printed:]
        if new_text:
            self._write(new_text)
        self._printed[message.id] = len(message.content)
        self._mid_reply = True
        if message.is_streaming:
            return

        turn = transcript.turns.get(message.id)
        if not message.is_error and turn is not None and turn.error:
            self._write(f"\n{self._line_prefix}[{turn.error}]")
        if message.is_error or (turn is not None and turn.error):
            self._write(f"\n{self._line_prefix}{RETRY_HINT}")
        self._write("\n")
        self._finished.add(message.id)
        self._mid_reply = False

    def _begin_line(self) -> None:
        self._stop_spinner()
        if not self._prefix_on_line:
            self._write(self._line_prefix)
        self._prefix_on_line = False

    def _update_status(self, status: str | None) -> None:
        if status is None or self._mid_reply:
            self._stop_spinner()
            return
        label = f" {status}"
        if self._spinner is not None and self._spinner_label == label:
            return
        self._stop_spinner()
        self._spinner = self._spinner_factory(prefix=self._line_prefix, label=label, out=self._out)
        self._spinner_label = label
        self._spinner.start()

    def _stop_spinner(self) -> None:
        if self._spinner is None:
            return
        self._spinner.stop()
        self._spinner = None
        self._spinner_label = None
        # Spinner.stop leaves the cursor right after the line prefix.
        self._prefix_on_line = True

    def _write(self, text: str) -> None:
        self._out.write(text)
        self._out.flush()
