from random import Random
from typing import Optional


class RetryDelayStrategy:
    """
    Computes reconnect delays with optional exponential backoff and jitter.

    The strategy is either in a "good" state (connected, recording since when)
    or a "bad" state. Asking for the next delay moves it to "bad". If it had
    been good for at least ``reset_interval`` seconds, the backoff restarts
    from the base delay.

    Instances are used from a single thread and are not synchronized.
    """

    def __init__(self, base_delay: float, reset_interval: Optional[float], backoff_strategy, jitter_strategy):
        self.__base_delay = base_delay
        self.__reset_interval = reset_interval
        self.__backoff = backoff_strategy
        self.__jitter = jitter_strategy
        self.__retry_count = 0
        self.__good_since: Optional[float] = None

    def next_retry_delay(self, current_time: float) -> float:
        """
        :param current_time: the current time in seconds; a parameter so that tests are deterministic
        """
        if self.__good_since is not None and self.__reset_interval and (current_time - self.__good_since >= self.__reset_interval):
            self.__retry_count = 0
        self.__good_since = None

        delay = self.__base_delay
        if self.__backoff is not None:
            delay = self.__backoff.apply_backoff(delay, self.__retry_count)
        self.__retry_count += 1
        if self.__jitter is not None:
            delay = self.__jitter.apply_jitter(delay)
        return delay

    def set_good_since(self, good_since: float):
        self.__good_since = good_since

    def set_base_delay(self, base_delay: float):
        self.__base_delay = base_delay
        self.__retry_count = 0


class DefaultBackoffStrategy:
    """Doubles the delay on every retry, up to ``max_delay``."""

    def __init__(self, max_delay: float):
        self.__max_delay = max_delay

    def apply_backoff(self, delay: float, retry_count: int) -> float:
        return min(delay * (2 ** retry_count), self.__max_delay)


class DefaultJitterStrategy:
    """Subtracts a pseudo-random fraction (at most ``ratio``) from each delay."""

    def __init__(self, ratio: float, rand_seed: Optional[int] = None):
        self.__ratio = ratio
        self.__random = Random(rand_seed)

    def apply_jitter(self, delay: float) -> float:
        return delay - (self.__random.random() * self.__ratio * delay)
