"""Abstract interface to a live GeoGebra construction."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict, field
from typing import Any


@dataclass
class CommandResult:
    """Outcome of applying one command to a live engine."""
    success: bool
    labels: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class ObjectInfo:
    """Computed properties of one construction object."""
    name: str
    type: str
    visible: bool = True
    defined: bool = True
    value: str | float | None = None
    x: float | None = None
    y: float | None = None
    color: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


class GeoGebraEngine(ABC):
    """A single-writer GeoGebra instance.

    Only one command may be in flight per engine; callers that share an
    engine go through ``geogebra.pool.EnginePool``.
    """

    @abstractmethod
    async def start(self) -> None:
        """Bring the engine up. Raises EngineConnectionError on failure."""
        ...

    @abstractmethod
    async def eval_command(self, command: str) -> CommandResult:
        """Apply a command. Rejections come back as ``success=False``."""
        ...

    @abstractmethod
    async def get_object_info(self, name: str) -> ObjectInfo | None:
        ...

    @abstractmethod
    async def get_all_object_names(self) -> list[str]:
        ...

    @abstractmethod
    async def new_construction(self) -> None:
        ...

    @abstractmethod
    async def export_png(self) -> str:
        """Return the current view as base64-encoded PNG."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...

    async def list_objects(self) -> list[ObjectInfo]:
        objects = []
        for name in await self.get_all_object_names():
            info = await self.get_object_info(name)
            if info is not None:
                objects.append(info)
        return objects
