from threading import RLock
from typing import Any, Callable, List

from flagcore.impl.util import log


class Listeners:
    """
    A list of callbacks that each receive a single value.

    Callbacks run synchronously on the notifying thread; a failing callback is
    logged and does not prevent the others from running.
    """

    def __init__(self):
        self.__listeners: List[Callable] = []
        self.__lock = RLock()

    def has_listeners(self) -> bool:
        with self.__lock:
            return len(self.__listeners) > 0

    def add(self, listener: Callable):
        with self.__lock:
            self.__listeners.append(listener)

    def remove(self, listener: Callable):
        with self.__lock:
            if listener in self.__listeners:
                self.__listeners.remove(listener)

    def notify(self, value: Any):
        with self.__lock:
            snapshot = list(self.__listeners)
        for listener in snapshot:
            try:
                listener(value)
            except Exception as e:
                log.exception("Unexpected error in listener for %s: %s" % (type(value).__name__, e))
