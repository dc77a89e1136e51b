import threading
from contextlib import contextmanager


class ReadWriteLock:
    """
    A lock that admits any number of concurrent readers or a single writer.

    A waiting writer blocks new readers from entering, so a steady flow of
    evaluations cannot starve the data system's updates.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writers_waiting = 0
        self._writing = False

    def rlock(self):
        with self._cond:
            while self._writing or self._writers_waiting > 0:
                self._cond.wait()
            self._readers += 1

    def runlock(self):
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def lock(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writing or self._readers > 0:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writing = True

    def unlock(self):
        with self._cond:
            self._writing = False
            self._cond.notify_all()

    @contextmanager
    def read(self):
        """Holds a read lock for the duration of a ``with`` block."""
        self.rlock()
        try:
            yield self
        finally:
            self.runlock()

    @contextmanager
    def write(self):
        """Holds the write lock for the duration of a ``with`` block."""
        self.lock()
        try:
            yield self
        finally:
            self.unlock()
