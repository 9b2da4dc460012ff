import time
from typing import Callable

FlushCallback = Callable[[str], None]


class StreamCoalescer:
    """Batch streamed fragments into fewer UI updates.

    A flush fires when the unflushed character count reaches ``char_threshold``
    or when ``interval`` seconds have passed since the last flush, whichever
    comes first. Every flush hands the callback the full accumulated text.
    ``finish()`` always flushes once more so the tail is never lost.
    """

    def __init__(
        self,
        on_flush: FlushCallback,
        char_threshold: int = 180,
        interval: float = 0.024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.on_flush = on_flush
        self.char_threshold = char_threshold
        self.interval = interval
        self._clock = clock
        self._parts: list[str] = []
        self._unflushed = 0
        self._last_flush = clock()
        self._flushing = False
        self._pending = False
        self.flush_count = 0
        self.fragment_count = 0

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def feed(self, fragment: str) -> None:
        if not fragment:
            return
        self._parts.append(fragment)
        self._unflushed += len(fragment)
        self.fragment_count += 1

        due = (
            self._unflushed >= self.char_threshold
            or self._clock() - self._last_flush >= self.interval
        )
        if due:
            self._flush()

    def finish(self) -> str:
        self._flush()
        return self.text

    def _flush(self) -> None:
        # A feed() issued from inside the callback is picked up by the loop below.
        if self._flushing:
            self._pending = True
            return
        self._flushing = True
        try:
            while True:
                self._pending = False
                self._unflushed = 0
                self._last_flush = self._clock()
                self.flush_count += 1
                self.on_flush(self.text)
                if not self._pending:
                    break
        finally:
            self._flushing = False
