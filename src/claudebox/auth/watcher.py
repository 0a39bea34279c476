"""Watch the terminal for Ctrl+C while a device-flow poll is running."""

from __future__ import annotations

import asyncio
import os
import sys
from contextlib import contextmanager
from typing import Iterator

INTERRUPT_BYTE = b"\x03"


@contextmanager
def raw_terminal(fd: int) -> Iterator[None]:
    """Disable line buffering, echo and signal keys on *fd* for the duration.

    Output post-processing is left on so status lines still render. The
    previous mode is restored on every exit path.
    """
    import termios

    saved = termios.tcgetattr(fd)
    mode = termios.tcgetattr(fd)
    mode[3] &= ~(termios.ICANON | termios.ECHO | termios.ISIG)
    mode[6][termios.VMIN] = 1
    mode[6][termios.VTIME] = 0
    termios.tcsetattr(fd, termios.TCSANOW, mode)
    try:
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


@contextmanager
def _unchanged() -> Iterator[None]:
    yield


class CancellableInputWatcher:
    """Reads stdin one byte at a time and signals cancellation on Ctrl+C.

    Pass an explicit *fd* to watch something other than stdin (a pipe in
    tests). Raw mode is only applied when the descriptor is a terminal.
    When stdin is not interactive the watcher just waits for the task.
    """

    def __init__(self, fd: int | None = None) -> None:
        if fd is None and sys.stdin is not None and sys.stdin.isatty():
            fd = sys.stdin.fileno()
        self.fd = fd

    def _terminal_mode(self):
        if self.fd is not None and os.name != "nt" and os.isatty(self.fd):
            return raw_terminal(self.fd)
        return _unchanged()

    async def watch(self, task: asyncio.Future, cancel: asyncio.Event) -> bool:
        """Block until *task* finishes or the interrupt byte arrives.

        Returns True if cancellation was signalled. *cancel* is set at most
        once and never after *task* has already finished.
        """
        if self.fd is None:
            await asyncio.wait([task])
            return False

        fd = self.fd
        loop = asyncio.get_running_loop()
        interrupted: asyncio.Future[bool] = loop.create_future()

        def _on_readable() -> None:
            try:
                data = os.read(fd, 1)
            except OSError:
                data = b""
            if not data:
                # EOF: nothing more to read, keep waiting on the task.
                loop.remove_reader(fd)
                return
            if data == INTERRUPT_BYTE and not interrupted.done():
                loop.remove_reader(fd)
                interrupted.set_result(True)

        with self._terminal_mode():
            try:
                loop.add_reader(fd, _on_readable)
            except NotImplementedError:
                await asyncio.wait([task])
                return False
            try:
                await asyncio.wait([task, interrupted], return_when=asyncio.FIRST_COMPLETED)
            finally:
                loop.remove_reader(fd)

        if interrupted.done() and not task.done():
            cancel.set()
            return True
        interrupted.cancel()
        return False
