from __future__ import annotations

import shutil
import sys
from typing import Optional, TextIO

from .streams import ProgressReporter


class ProgressBar(ProgressReporter):
    """``prefix [=====     ] current/total`` redrawn in place on a terminal.

    Nothing is drawn when ``output`` is not a TTY.
    """

    def __init__(self, prefix: str, output: Optional[TextIO] = None, full: str = "=", empty: str = " "):
        self.prefix = prefix
        self.output = output if output is not None else sys.stdout
        self.full = full
        self.empty = empty
        self._drawn = False

    def _width(self) -> Optional[int]:
        if not self.output.isatty():
            return None
        return shutil.get_terminal_size().columns

    def report(self, current: int, total: int) -> None:
        width = self._width()
        if width is None:
            return
        fraction = current / total if total else 1.0
        counter = f"{current}/{total}"
        bar_len = max(10, width - len(self.prefix) - len(counter) - 5)
        full_count = int(bar_len * fraction)
        bar = self.full * full_count + self.empty * (bar_len - full_count)
        self.output.write(f"\r{self.prefix} [{bar}] {counter}")
        self.output.flush()
        self._drawn = True

    def finish(self) -> None:
        if self._drawn:
            self.output.write("\n")
            self.output.flush()
            self._drawn = False


def progress_bars(output: Optional[TextIO] = None):
    """Factory suitable for the ``progress`` argument of the pipeline."""

    def _factory(name: str, total: int) -> ProgressReporter:
        return ProgressBar(name, output=output)

    return _factory
