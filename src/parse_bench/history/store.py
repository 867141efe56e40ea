"""Bounded, locally persisted history of benchmark runs."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError
from pydantic.alias_generators import to_snake

from parse_bench.config import HistoryConfig
from parse_bench.errors import HistoryImportError
from parse_bench.history.kv import KeyValueStore
from parse_bench.obs.timing import Clock, SystemClock, to_iso
from parse_bench.status import JobStatus, can_transition, is_terminal
from parse_bench.types import (
    AiComparisonResult,
    BenchmarkRunResult,
    HistoryEntry,
    HistorySummary,
    MethodConfig,
    MethodResult,
    MethodStatusSummary,
    OriginalFile,
)

logger = logging.getLogger(__name__)


class RunHistoryStore:
    """Owns every `HistoryEntry`; callers only ever see copies.

    The whole history is one JSON array under a single key. Every mutation is
    a read-modify-write of that array (last writer wins), serialized by a lock
    because poll callbacks may fire on timer threads.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        config: HistoryConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.kv = kv
        self.config = config or HistoryConfig()
        self.clock = clock or SystemClock()
        self._lock = threading.RLock()

    def list_entries(self) -> list[HistoryEntry]:
        with self._lock:
            return self._load()

    def get_by_id(self, run_id: str) -> HistoryEntry | None:
        for entry in self.list_entries():
            if entry.run_id == run_id:
                return entry
        return None

    def create(self, result: BenchmarkRunResult) -> HistoryEntry:
        """Insert a run at the front, replacing any entry with the same run id."""

        entry = HistoryEntry.model_validate(result.model_dump())
        with self._lock:
            remaining = [item for item in self._load() if item.run_id != entry.run_id]
            self._save([entry, *remaining])
        return entry

    def create_pending(
        self,
        run_id: str,
        started_at: str,
        original_file: OriginalFile,
        methods: Iterable[MethodConfig],
    ) -> HistoryEntry:
        entry = HistoryEntry(
            run_id=run_id,
            started_at=started_at,
            original_file=original_file,
            methods=[MethodResult(method=m.name, label=m.label) for m in methods],
        )
        return self.create(entry)

    def merge_method_update(
        self,
        run_id: str,
        method: str,
        fields: Mapping[str, Any],
    ) -> MethodResult | None:
        """Shallow-merge `fields` into one method's record.

        Keys may be camelCase or snake_case. Updates that would move a method
        backwards, or change a terminal status, are ignored. The run's
        `completed_at` is set the first time every method is terminal.
        Returns the method's record after the merge, or None if not found.
        """

        update = {to_snake(key): value for key, value in fields.items()}
        with self._lock:
            entries = self._load()
            entry = next((item for item in entries if item.run_id == run_id), None)
            if entry is None:
                logger.warning("Ignoring update for unknown run %s", run_id)
                return None
            index = next((i for i, m in enumerate(entry.methods) if m.method == method), None)
            if index is None:
                logger.warning("Ignoring update for unknown method %s in run %s", method, run_id)
                return None

            current = entry.methods[index]
            new_status = JobStatus(update.get("status", current.status))
            if is_terminal(current.status) and "status" not in update:
                logger.warning("Ignoring update to terminal method %s in run %s", method, run_id)
                return current
            if not can_transition(current.status, new_status):
                logger.warning(
                    "Ignoring %s -> %s for method %s in run %s",
                    current.status.value,
                    new_status.value,
                    method,
                    run_id,
                )
                return current

            merged = current.model_dump()
            merged.update(update)
            entry.methods[index] = MethodResult.model_validate(merged)

            if entry.completed_at is None and all(is_terminal(m.status) for m in entry.methods):
                entry.completed_at = to_iso(self.clock.now())
                logger.info("Run %s completed", run_id)
            self._save(entries)
            return entry.methods[index]

    def attach_ai_comparison(self, run_id: str, comparison: AiComparisonResult) -> bool:
        with self._lock:
            entries = self._load()
            for entry in entries:
                if entry.run_id == run_id:
                    entry.ai_comparison = comparison
                    self._save(entries)
                    return True
        logger.warning("Cannot attach comparison: run %s not in history", run_id)
        return False

    def summarize(self) -> list[HistorySummary]:
        return [
            HistorySummary(
                run_id=entry.run_id,
                file_name=entry.original_file.name,
                file_size=entry.original_file.size,
                started_at=entry.started_at,
                completed_at=entry.completed_at,
                methods=[
                    MethodStatusSummary(method=m.method, label=m.label, status=m.status)
                    for m in entry.methods
                ],
                has_ai_comparison=entry.ai_comparison is not None,
            )
            for entry in self.list_entries()
        ]

    def export(self) -> str:
        return json.dumps([entry.to_wire() for entry in self.list_entries()], indent=2)

    def import_json(self, text: str) -> int:
        """Merge exported history ahead of the existing entries.

        Entries whose run id already exists are skipped. The whole import is
        rejected if any entry is malformed. Returns the number of entries added.
        """

        try:
            payload = json.loads(text)
        except ValueError as exc:
            raise HistoryImportError(f"Invalid history JSON: {exc}") from exc
        if not isinstance(payload, list):
            raise HistoryImportError("Invalid history format")

        imported: list[HistoryEntry] = []
        for item in payload:
            if (
                not isinstance(item, dict)
                or not item.get("runId")
                or not item.get("originalFile")
                or not isinstance(item.get("methods"), list)
            ):
                raise HistoryImportError("Invalid history entry format")
            try:
                imported.append(HistoryEntry.model_validate(item))
            except ValidationError as exc:
                raise HistoryImportError(f"Invalid history entry {item.get('runId')}: {exc}") from exc

        with self._lock:
            existing = self._load()
            known = {entry.run_id for entry in existing}
            added: list[HistoryEntry] = []
            for entry in imported:
                if entry.run_id not in known:
                    known.add(entry.run_id)
                    added.append(entry)
            self._save([*added, *existing])
        return len(added)

    def clear(self) -> None:
        with self._lock:
            self.kv.delete(self.config.storage_key)

    def _load(self) -> list[HistoryEntry]:
        raw = self.kv.get(self.config.storage_key)
        if not raw:
            return []
        try:
            payload = json.loads(raw)
            return [HistoryEntry.model_validate(item) for item in payload]
        except (ValueError, TypeError) as exc:
            logger.warning("Discarding unreadable history: %s", exc)
            return []

    def _save(self, entries: list[HistoryEntry]) -> None:
        capped = entries[: self.config.max_entries]
        self.kv.set(self.config.storage_key, json.dumps([entry.to_wire() for entry in capped]))
