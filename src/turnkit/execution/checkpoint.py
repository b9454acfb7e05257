"""Checkpointers: persistence of turn state between runs of a thread.

Directory layout of FileCheckpointer:
    base_path/
    └── <thread_id>.json  # one document per thread
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Protocol, runtime_checkable
from urllib.parse import quote

import aiofiles
import aiofiles.os

from .state import TurnState

logger = logging.getLogger(__name__)


@runtime_checkable
class Checkpointer(Protocol):
    """Stores and restores turn state by thread id."""

    async def load(self, thread_id: str) -> Optional[TurnState]:
        ...

    async def save(self, thread_id: str, state: TurnState) -> None:
        ...

    async def delete(self, thread_id: str) -> bool:
        ...


class InMemoryCheckpointer:
    """Checkpointer keeping states in a dict. Contents are lost with the process."""

    def __init__(self) -> None:
        self._states: Dict[str, TurnState] = {}

    async def load(self, thread_id: str) -> Optional[TurnState]:
        state = self._states.get(thread_id)
        if state is None:
            return None
        return TurnState(messages=list(state.messages), thread_id=thread_id)

    async def save(self, thread_id: str, state: TurnState) -> None:
        self._states[thread_id] = TurnState(messages=list(state.messages), thread_id=thread_id)

    async def delete(self, thread_id: str) -> bool:
        return self._states.pop(thread_id, None) is not None

    def __len__(self) -> int:
        return len(self._states)


class FileCheckpointer:
    """Checkpointer writing one JSON document per thread."""

    def __init__(self, base_path: Path) -> None:
        """
        Args:
            base_path: Directory holding the thread documents.
        """
        self._base_path = Path(base_path)

    def _path(self, thread_id: str) -> Path:
        # Percent-encoded so distinct ids map to distinct files
        return self._base_path / f"{quote(thread_id, safe='')}.json"

    async def _ensure_directory(self) -> None:
        if not self._base_path.exists():
            await aiofiles.os.makedirs(str(self._base_path), exist_ok=True)

    async def load(self, thread_id: str) -> Optional[TurnState]:
        path = self._path(thread_id)
        if not path.exists():
            return None

        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
            data = json.loads(content) if content.strip() else None
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not read checkpoint for thread '{thread_id}': {e}")
            return None

        if data is None:
            return None
        state = TurnState.from_dict(data)
        state.thread_id = thread_id
        return state

    async def save(self, thread_id: str, state: TurnState) -> None:
        await self._ensure_directory()
        payload = {**state.to_dict(), "thread_id": thread_id}
        async with aiofiles.open(self._path(thread_id), "w", encoding="utf-8") as f:
            await f.write(json.dumps(payload, indent=2, ensure_ascii=False))

    async def delete(self, thread_id: str) -> bool:
        path = self._path(thread_id)
        if not path.exists():
            return False
        await aiofiles.os.remove(str(path))
        return True
