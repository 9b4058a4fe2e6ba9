"""Base interfaces for pipeline services."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from ..protocol.structures import CrashEvent, Fault

EnrichCallback = Callable[[CrashEvent], None]
ResultCallback = Callable[[BaseException | None], None]


class FaultTransport(Protocol):
    """Protocol describing the fault transport consumed by the delivery client.

    Contract for ``notify``:

    * ``on_event`` is invoked synchronously with a mutable event, before the
      event is serialised.
    * ``on_result`` is invoked exactly once after the transmission attempt,
      with ``None`` on success or the transport error otherwise.
    * ``on_event`` always runs strictly before ``on_result`` for the same call.
    """

    def notify(
        self,
        fault: Fault,
        on_event: EnrichCallback,
        on_result: ResultCallback,
    ) -> None: ...

    async def aclose(self) -> None: ...


__all__ = ["EnrichCallback", "FaultTransport", "ResultCallback"]
