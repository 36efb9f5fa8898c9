"""Checkout pool for single-writer GeoGebra engines."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from agent.exceptions import EngineConnectionError
from geogebra.engine import GeoGebraEngine

logger = logging.getLogger(__name__)


class EnginePool:
    """Hands out at most one engine per caller at a time.

    Engines are created lazily by ``factory`` up to ``size``; a caller that
    finds every engine checked out waits until one is released. An engine
    whose checkout ends in EngineConnectionError is closed and replaced on
    the next checkout. The pool must be used from a single event loop.
    """

    def __init__(self, factory: Callable[[], GeoGebraEngine], size: int = 1):
        if size < 1:
            raise ValueError("pool size must be >= 1")
        self._factory = factory
        self.size = size
        self._idle: list[GeoGebraEngine] = []
        self._all: list[GeoGebraEngine] = []
        self._cond: asyncio.Condition | None = None
        self._creating = 0

    @property
    def created(self) -> int:
        return len(self._all)

    @property
    def available(self) -> int:
        return len(self._idle) + (self.size - len(self._all) - self._creating)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[GeoGebraEngine]:
        engine = await self._checkout()
        broken = False
        try:
            yield engine
        except EngineConnectionError:
            broken = True
            raise
        finally:
            await self._release(engine, broken)

    async def close(self) -> None:
        cond = self._condition()
        async with cond:
            engines, self._all, self._idle = list(self._all), [], []
        for engine in engines:
            try:
                await engine.close()
            except Exception as e:
                logger.warning("Failed to close GeoGebra engine: %s", e)

    async def _checkout(self) -> GeoGebraEngine:
        cond = self._condition()
        async with cond:
            while True:
                if self._idle:
                    return self._idle.pop()
                if len(self._all) + self._creating < self.size:
                    self._creating += 1
                    break
                await cond.wait()

        try:
            engine = self._factory()
            await engine.start()
        except BaseException:
            async with cond:
                self._creating -= 1
                cond.notify()
            raise

        async with cond:
            self._creating -= 1
            self._all.append(engine)
        logger.info("Created GeoGebra engine %d/%d", len(self._all), self.size)
        return engine

    async def _release(self, engine: GeoGebraEngine, broken: bool = False) -> None:
        cond = self._condition()
        async with cond:
            if engine in self._all:
                if broken:
                    self._all.remove(engine)
                else:
                    self._idle.append(engine)
            cond.notify()
        if broken:
            logger.warning("Discarding GeoGebra engine after a connection failure")
            try:
                await engine.close()
            except Exception as e:
                logger.warning("Failed to close GeoGebra engine: %s", e)

    def _condition(self) -> asyncio.Condition:
        # created on first use so it binds to the running loop
        if self._cond is None:
            self._cond = asyncio.Condition()
        return self._cond
