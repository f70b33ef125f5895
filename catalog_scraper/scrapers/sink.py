"""Dataset sinks: where accepted product records end up."""

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

import structlog

logger = structlog.get_logger(__name__)


class DatasetSink(ABC):
    """Append-only destination for dataset items, in acceptance order."""

    @abstractmethod
    async def push(self, items: Sequence[Dict[str, Any]]) -> None:
        pass

    async def close(self) -> None:
        pass


class MemorySink(DatasetSink):
    """Keeps items in a list (tests, programmatic use)."""

    def __init__(self):
        self.items: List[Dict[str, Any]] = []

    async def push(self, items: Sequence[Dict[str, Any]]) -> None:
        self.items.extend(items)


class JsonLinesSink(DatasetSink):
    """Appends one JSON object per line to a file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.count = 0
        self._lock = asyncio.Lock()

    async def push(self, items: Sequence[Dict[str, Any]]) -> None:
        if not items:
            return
        lines = "".join(json.dumps(item, ensure_ascii=False) + "\n" for item in items)
        async with self._lock:
            await asyncio.to_thread(self._append, lines)
            self.count += len(items)
        logger.debug("dataset_items_written", path=str(self.path), count=len(items))

    def _append(self, lines: str) -> None:
        with self.path.open("a", encoding="utf-8") as f:
            f.write(lines)
