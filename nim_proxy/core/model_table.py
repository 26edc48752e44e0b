"""Read-only table of public model names and their NIM counterparts."""

from __future__ import annotations

import time
from types import MappingProxyType
from typing import Iterator, Mapping, Optional

from ..types import ModelCard

OWNED_BY = "nvidia-nim-proxy"


class ModelTable:
    """Static public -> upstream model mapping, built once at startup."""

    def __init__(
        self, mapping: Mapping[str, str], created: Optional[int] = None
    ) -> None:
        self._mapping = MappingProxyType(dict(mapping))
        self.created = int(created if created is not None else time.time())

    def __contains__(self, name: object) -> bool:
        return name in self._mapping

    def __iter__(self) -> Iterator[str]:
        return iter(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    def resolve(self, model: str) -> str:
        """Return the upstream model for a public name, or the name itself."""
        return self._mapping.get(model, model)

    def model_cards(self) -> list[ModelCard]:
        return [
            {
                "id": name,
                "object": "model",
                "created": self.created,
                "owned_by": OWNED_BY,
            }
            for name in self._mapping
        ]
