"""Message identifier generators."""

from __future__ import annotations

import secrets
import string
import threading
import time
from typing import Callable, Protocol, Union

_ALPHABET = string.digits + string.ascii_lowercase


class IdGenerator(Protocol):
    def next(self) -> str:
        ...


class ClockRandomIdGenerator:
    """Clock reading plus a random base-36 suffix, e.g. ``msg-1760880000000000000-k3j9x0a``.

    The clock part is strictly increasing per generator, so ids never repeat
    even when two calls land on the same nanosecond tick.
    """

    def __init__(
        self,
        prefix: str = "msg",
        suffix_length: int = 7,
        clock: Callable[[], int] = time.time_ns,
    ):
        self.prefix = prefix
        self.suffix_length = suffix_length
        self._clock = clock
        self._last_tick = 0
        self._lock = threading.Lock()

    def _tick(self) -> int:
        with self._lock:
            tick = self._clock()
            if tick <= self._last_tick:
                tick = self._last_tick + 1
            self._last_tick = tick
            return tick

    def _suffix(self) -> str:
        return "".join(secrets.choice(_ALPHABET) for _ in range(self.suffix_length))

    def next(self) -> str:
        return f"{self.prefix}-{self._tick()}-{self._suffix()}"

    __call__ = next


class SequentialIdGenerator:
    """Deterministic ids (``msg-1``, ``msg-2``, ...) for tests and replays."""

    def __init__(self, prefix: str = "msg", start: int = 1):
        self.prefix = prefix
        self._counter = start
        self._lock = threading.Lock()

    def next(self) -> str:
        with self._lock:
            value = self._counter
            self._counter += 1
        return f"{self.prefix}-{value}"

    __call__ = next


class _CallableIdGenerator:
    def __init__(self, fn: Callable[[], str]):
        self._fn = fn

    def next(self) -> str:
        return self._fn()


IdSource = Union[IdGenerator, Callable[[], str]]

_generators: dict[str, ClockRandomIdGenerator] = {}
_generators_lock = threading.Lock()


def default_id_generator(prefix: str = "msg") -> ClockRandomIdGenerator:
    """Process-wide default generator for *prefix*."""
    with _generators_lock:
        generator = _generators.get(prefix)
        if generator is None:
            generator = _generators[prefix] = ClockRandomIdGenerator(prefix)
        return generator


def as_id_generator(source: IdSource | None, prefix: str = "msg") -> IdGenerator:
    """Accept a generator object or a bare zero-argument callable."""
    if source is None:
        return default_id_generator(prefix)
    if hasattr(source, "next"):
        return source  # type: ignore[return-value]
    if callable(source):
        return _CallableIdGenerator(source)
    raise TypeError(f"Unsupported id generator: {source!r}")
