"""In-memory implementation of KeyValueStore for testing."""

from __future__ import annotations

import json
from typing import Any, List, Mapping, Optional, Union

from poolrelay.infrastructure.storage import KeyValueStore


def _parse_bound(value: Union[float, str]) -> tuple[float, bool]:
    """Return ``(score, exclusive)`` for a Redis score bound such as ``(42``."""
    if isinstance(value, str):
        if value.startswith("("):
            return float(value[1:]), True
        return float(value), False
    return float(value), False


class InMemoryKeyValueStore(KeyValueStore):
    """In-memory implementation of KeyValueStore for fast testing."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._sorted_sets: dict[str, dict[str, float]] = {}
        self._script_cache: dict[str, str] = {}
        self._script_sources: dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        members = self._sorted_sets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in members)
        members.update({member: float(score) for member, score in mapping.items()})
        return added

    def _ordered(self, key: str) -> list[tuple[str, float]]:
        members = self._sorted_sets.get(key, {})
        return sorted(members.items(), key=lambda item: (item[1], item[0]))

    async def zrevrange(self, key: str, start: int, end: int) -> list[str]:
        members = [m for m, _ in reversed(self._ordered(key))]
        # Redis ranges are inclusive on both ends
        slice_end = None if end == -1 else end + 1
        return members[start:slice_end]

    async def zrangebyscore(
        self, key: str, min_score: Union[float, str], max_score: Union[float, str]
    ) -> list[str]:
        low, low_exclusive = _parse_bound(min_score)
        high, high_exclusive = _parse_bound(max_score)
        result = []
        for member, score in self._ordered(key):
            if score < low or (low_exclusive and score == low):
                continue
            if score > high or (high_exclusive and score == high):
                continue
            result.append(member)
        return result

    async def zrem(self, key: str, member: str) -> int:
        members = self._sorted_sets.get(key, {})
        return 1 if members.pop(member, None) is not None else 0

    async def register_script(self, name: str, script: str) -> str:
        """Register a script (return mock SHA1)."""
        self._script_cache[name] = f"sha1_{name}"
        self._script_sources[name] = script
        return f"sha1_{name}"

    async def run_script(self, name: str, keys: List[str], args: List[str]) -> Any:
        if name not in self._script_cache:
            raise ValueError(f"Script '{name}' not registered")
        if name == "save_if_version":
            return self._execute_save_if_version(keys, args)
        if name == "create_if_absent":
            return self._execute_create_if_absent(keys, args)
        raise NotImplementedError(f"Script not implemented: {name}")

    def _execute_save_if_version(self, keys: List[str], args: List[str]) -> list[Any]:
        entity_key = keys[0]
        expected_version = int(args[0])
        new_val = args[1]

        current_raw = self._data.get(entity_key)
        if not current_raw:
            return [2, ""]

        current_version = int(json.loads(current_raw).get("version") or 0)
        if current_version != expected_version:
            return [0, current_raw]

        self._data[entity_key] = new_val
        return [1, new_val]

    def _execute_create_if_absent(
        self, keys: List[str], args: List[str]
    ) -> list[Any]:
        entity_key = keys[0]
        current_raw = self._data.get(entity_key)
        if current_raw:
            return [0, current_raw]
        self._data[entity_key] = args[0]
        return [1, args[0]]

    def clear(self) -> None:
        """Clear all data (useful for test teardown)."""
        self._data.clear()
        self._sorted_sets.clear()
        self._script_cache.clear()
        self._script_sources.clear()
