from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from inkstream.models.request import RequestDescription


@dataclass(frozen=True)
class TransportHandlers:
    """Callbacks a transport invokes on the event loop thread, in arrival order"""

    on_stdout: Callable[[str], None]
    on_stderr: Callable[[str], None]
    on_exit: Callable[[int], None]


class TransportHandle(ABC):
    """A running request. After terminate() no handler is invoked again."""

    @property
    @abstractmethod
    def is_running(self) -> bool:
        pass

    @abstractmethod
    def terminate(self) -> None:
        """Stop the request without blocking the caller."""
        pass

    @abstractmethod
    async def wait(self) -> None:
        """Wait until the request and any teardown have fully finished."""
        pass


class Transport(ABC):
    """Executes a RequestDescription and reports its output line by line"""

    name: str

    @abstractmethod
    def spawn(self, request: RequestDescription, handlers: TransportHandlers) -> TransportHandle:
        """Start the request. Must be called from a running event loop."""
        pass

    async def cleanup(self) -> None:
        """Release shared resources."""
        pass
