from threading import Lock
from typing import Any, Callable

from flagcore.context import Context
from flagcore.impl.listeners import Listeners
from flagcore.interfaces import FlagChange, FlagTracker, FlagValueChange
from flagcore.value import values_equal


class FlagValueChangeListener:
    """
    Adapts a :class:`FlagValueChange` listener to the flag-change listener list: on each change of
    the watched flag it re-evaluates for the stored context and reports only real value changes.
    """

    def __init__(self, key: str, context: Context, listener: Callable[[FlagValueChange], None], eval_fn: Callable[[str, Context], Any]):
        self.__key = key
        self.__context = context
        self.__listener = listener
        self.__eval_fn = eval_fn

        self.__lock = Lock()
        self.__value = eval_fn(key, context)

    def __call__(self, flag_change: FlagChange):
        if flag_change.key != self.__key:
            return

        new_value = self.__eval_fn(self.__key, self.__context)

        with self.__lock:
            old_value, self.__value = self.__value, new_value

        if values_equal(new_value, old_value):
            return

        self.__listener(FlagValueChange(self.__key, old_value, new_value))


class FlagTrackerImpl(FlagTracker):
    def __init__(self, listeners: Listeners, eval_fn: Callable[[str, Context], Any]):
        self.__listeners = listeners
        self.__eval_fn = eval_fn

    def add_listener(self, listener: Callable[[FlagChange], None]):
        self.__listeners.add(listener)

    def remove_listener(self, listener: Callable[[FlagChange], None]):
        self.__listeners.remove(listener)

    def add_flag_value_change_listener(self, key: str, context: Context, fn: Callable[[FlagValueChange], None]) -> Callable[[FlagChange], None]:
        listener = FlagValueChangeListener(key, context, fn, self.__eval_fn)
        self.add_listener(listener)

        return listener
