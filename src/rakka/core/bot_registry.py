"""Registry of running messenger adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rakka.messenger.base import MessengerAdapter


class AdapterRegistry:
    """Tracks every started platform adapter by its configured id."""

    def __init__(self) -> None:
        self._adapters: dict[str, MessengerAdapter] = {}

    def register(self, adapter_id: str, adapter: MessengerAdapter) -> None:
        if adapter_id in self._adapters:
            raise ValueError(f"Adapter '{adapter_id}' is already registered")
        self._adapters[adapter_id] = adapter

    def get(self, adapter_id: str) -> MessengerAdapter | None:
        return self._adapters.get(adapter_id)

    def all(self) -> list[MessengerAdapter]:
        return list(self._adapters.values())

    def ids(self) -> list[str]:
        return list(self._adapters.keys())

    def clear(self) -> None:
        self._adapters.clear()

    def __len__(self) -> int:
        return len(self._adapters)
