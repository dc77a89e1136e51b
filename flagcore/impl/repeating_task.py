import time
from threading import Event, Thread
from typing import Callable

from flagcore.impl.util import log


class RepeatingTask:
    """
    Calls a function at a fixed interval on a daemon worker thread until stopped.
    """

    def __init__(self, label: str, interval: float, initial_delay: float, callable: Callable):
        """
        :param label: prefix for the worker thread's name
        :param interval: maximum time in seconds between invocations of the callback
        :param initial_delay: time in seconds to wait before the first invocation
        :param callable: the function to execute repeatedly
        """
        self.__interval = interval
        self.__initial_delay = initial_delay
        self.__action = callable
        self.__stop = Event()
        self.__thread = Thread(target=self._run, name=f"{label}.repeating", daemon=True)

    def start(self):
        self.__thread.start()

    def stop(self):
        """
        Signals the worker thread to exit. A stopped task cannot be restarted.
        """
        self.__stop.set()

    @property
    def stopped(self) -> bool:
        return self.__stop.is_set()

    def _run(self):
        if self.__initial_delay > 0 and self.__stop.wait(self.__initial_delay):
            return
        while not self.__stop.is_set():
            deadline = time.time() + self.__interval
            try:
                self.__action()
            except Exception as e:
                log.exception("Unexpected exception on worker thread: %s" % e)
            remaining = deadline - time.time()
            if remaining > 0:
                self.__stop.wait(remaining)
