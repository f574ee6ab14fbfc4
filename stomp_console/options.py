"""
Display options shared between console commands and the receive loop.
"""
import threading
from dataclasses import dataclass
from typing import Callable

from .config import DEFAULT_LONG_FORMAT, DEFAULT_SHORT_FORMAT
from .message import Message


MessageCallback = Callable[[Message], None]


def default_callback(message: Message) -> None:
    """Callback installed at session start; does nothing"""
    pass


@dataclass(frozen=True)
class OptionsSnapshot:
    """Consistent view of the options taken at one instant"""
    verbose: bool
    long_format: str
    short_format: str
    callback: MessageCallback

    @property
    def template(self) -> str:
        return self.long_format if self.verbose else self.short_format


class SessionOptions:
    """
    Verbosity, display templates and the receive callback.
    Setters are last-writer-wins; every read sees whole values.
    """

    def __init__(self,
                 verbose: bool = False,
                 long_format: str = DEFAULT_LONG_FORMAT,
                 short_format: str = DEFAULT_SHORT_FORMAT,
                 callback: MessageCallback = default_callback):
        self._lock = threading.Lock()
        self._verbose = verbose
        self._long_format = long_format
        self._short_format = short_format
        self._callback = callback

    @classmethod
    def from_config(cls, config) -> 'SessionOptions':
        return cls(
            verbose=bool(config.get('display.verbose', False)),
            long_format=config.get('display.long_format', DEFAULT_LONG_FORMAT),
            short_format=config.get('display.short_format', DEFAULT_SHORT_FORMAT),
        )

    def set_verbose(self, verbose: bool) -> None:
        with self._lock:
            self._verbose = bool(verbose)

    def toggle_verbose(self) -> bool:
        """Flip verbosity and return the new value"""
        with self._lock:
            self._verbose = not self._verbose
            return self._verbose

    def set_long_format(self, template: str) -> None:
        if not isinstance(template, str):
            raise TypeError(f"Format must be a string, got {type(template).__name__}")
        with self._lock:
            self._long_format = template

    def set_short_format(self, template: str) -> None:
        if not isinstance(template, str):
            raise TypeError(f"Format must be a string, got {type(template).__name__}")
        with self._lock:
            self._short_format = template

    def set_callback(self, callback: MessageCallback) -> None:
        if not callable(callback):
            raise TypeError(f"Callback must be callable, got {type(callback).__name__}")
        with self._lock:
            self._callback = callback

    def reset_callback(self) -> None:
        self.set_callback(default_callback)

    @property
    def verbose(self) -> bool:
        with self._lock:
            return self._verbose

    def current_template(self) -> str:
        """Long format when verbose, short format otherwise"""
        with self._lock:
            return self._long_format if self._verbose else self._short_format

    def snapshot(self) -> OptionsSnapshot:
        with self._lock:
            return OptionsSnapshot(
                verbose=self._verbose,
                long_format=self._long_format,
                short_format=self._short_format,
                callback=self._callback,
            )
