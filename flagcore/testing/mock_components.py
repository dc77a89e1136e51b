from typing import List

from flagcore.interfaces import EventProcessor, Selector, SelectorStore


class MockSelectorStore(SelectorStore):
    def __init__(self, selector: Selector = Selector.no_selector()):
        self._selector = selector

    def selector(self) -> Selector:
        return self._selector

    def save(self, selector: Selector):
        self._selector = selector


class MockEventProcessor(EventProcessor):
    def __init__(self):
        self._events: List = []
        self.flushed = 0
        self.stopped = False

    def send_event(self, event):
        self._events.append(event)

    def flush(self):
        self.flushed += 1

    def stop(self):
        self.stopped = True

    @property
    def events(self) -> List:
        return self._events

    def reset(self):
        self._events = []
