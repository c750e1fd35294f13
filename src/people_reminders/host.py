from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol

Record = dict[str, Any]
ChangeHandler = Callable[[list[Record]], Awaitable[None]]


class HostOperationError(RuntimeError):
    """A call into the host store failed."""


class HostStore(Protocol):
    """Data-access operations the reminder engine needs from its host.

    Records are loosely typed dicts in the host's own shape: property keys
    may be namespaced or suffixed, and values may be references of the form
    ``{"id": ...}`` that need a follow-up ``resolve_reference``.
    """

    async def fetch_tagged_records(self, tag: str) -> list[Record]: ...

    async def resolve_reference(self, record_id: str) -> Record | None: ...

    async def find_record_by_name(self, name: str) -> Record | None: ...

    async def create_record(self, name: str, *, journal: bool = False) -> Record: ...

    async def append_entry(self, container_id: str, text: str) -> Record: ...

    async def tag_entry(self, entry_id: str, tag: str) -> None: ...

    async def set_property(self, record_id: str, key: str, value: Any) -> None: ...

    def on_change_notification(self, handler: ChangeHandler) -> None: ...
