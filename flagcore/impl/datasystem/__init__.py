"""
This package contains the data system: the store facade that holds the
client's copy of the data, the engine that keeps it current, and the
interfaces that data sources implement to feed it.
"""

from abc import abstractmethod
from dataclasses import dataclass
from typing import Generator, Optional, Protocol

from flagcore.interfaces import (
    ChangeSet,
    DataSourceErrorInfo,
    DataSourceState,
    SelectorStore
)


@dataclass(frozen=True)
class Update:
    """
    Update represents the results of a synchronizer's ongoing sync
    method. A change set, if present, is applied before the state is
    reported.
    """

    state: DataSourceState
    change_set: Optional[ChangeSet] = None
    error: Optional[DataSourceErrorInfo] = None


class Synchronizer(Protocol):  # pylint: disable=too-few-public-methods
    """
    Synchronizer represents a component capable of synchronizing data from an external
    data source, such as a streaming or polling API.

    It is responsible for yielding Update objects that represent the current state
    of the data source, including any changes that have occurred since the last
    synchronization.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Returns the name of the synchronizer, which is used for logging and debugging.
        """
        raise NotImplementedError

    @abstractmethod
    def sync(self, ss: SelectorStore) -> Generator[Update, None, None]:
        """
        sync should begin the synchronization process for the data source, yielding
        Update objects until the connection is closed or an unrecoverable error
        occurs. The selector store tells the source which snapshot the client
        already holds.
        """
        raise NotImplementedError

    @abstractmethod
    def stop(self):
        """
        stop should halt the synchronization process, causing the sync method
        to exit as soon as possible.
        """
        raise NotImplementedError
