from __future__ import annotations

import errno
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, TypeVar

from pydantic import TypeAdapter, ValidationError

from benchquiz.core.errors import QuotaExceededError, StorageError
from benchquiz.core.logging import DOMAIN_STORAGE, get_domain_logger
from benchquiz.core.settings import settings
from benchquiz.grading.timing import now_ms
from benchquiz.schemas.progress import StoredData, TestResults, UserPreferences, UserProgress

logger = get_domain_logger(__name__, DOMAIN_STORAGE)

PROGRESS_KEY = "progress"
HISTORY_KEY = "history"
PREFERENCES_KEY = "preferences"
VERSION_KEY = "data_version"
STORAGE_KEYS = (PROGRESS_KEY, HISTORY_KEY, PREFERENCES_KEY, VERSION_KEY)

CURRENT_VERSION = "1.0.0"

T = TypeVar("T")

_history_adapter: TypeAdapter[list[TestResults]] = TypeAdapter(list[TestResults])


class ProgressStore(ABC):
    """
    Key-value store for progress, history and preferences.

    Subclasses only provide raw string get/set/remove. Reads fall back to defaults
    and log on any failure; writes raise StorageError (QuotaExceededError when full).
    """

    def __init__(self, quota_bytes: int | None = None, history_limit: int | None = None):
        self.quota_bytes = settings.storage_quota_bytes if quota_bytes is None else quota_bytes
        self.history_limit = history_limit or settings.history_limit

    @abstractmethod
    def _get_raw(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def _set_raw(self, key: str, value: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def _remove_raw(self, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def _usage_bytes(self) -> int:
        raise NotImplementedError

    # -- safe primitives ------------------------------------------------------

    def _safe_get(self, key: str, default: T, parse: Callable[[str], T]) -> T:
        try:
            raw = self._get_raw(key)
            if raw is None:
                return default
            return parse(raw)
        except (OSError, ValueError, ValidationError) as exc:
            logger.error("Failed to read from storage (key: %s): %s", key, exc)
            return default

    def _safe_set(self, key: str, value: str) -> None:
        if self.quota_bytes:
            current = self._get_raw_size(key)
            projected = self._usage_bytes() - current + len(value.encode("utf-8")) + len(key)
            if projected > self.quota_bytes:
                raise QuotaExceededError({"key": key, "projected_bytes": projected, "quota_bytes": self.quota_bytes})
        try:
            self._set_raw(key, value)
        except OSError as exc:
            if exc.errno == errno.ENOSPC:
                raise QuotaExceededError({"key": key, "original_error": str(exc)}) from exc
            raise StorageError(f"Failed to write to storage (key: {key})", "write", {"original_error": str(exc)}) from exc

    def _safe_remove(self, key: str) -> None:
        try:
            self._remove_raw(key)
        except OSError as exc:
            raise StorageError(f"Failed to remove from storage (key: {key})", "delete", {"original_error": str(exc)}) from exc

    def _get_raw_size(self, key: str) -> int:
        try:
            raw = self._get_raw(key)
        except OSError:
            return 0
        return len(raw.encode("utf-8")) + len(key) if raw is not None else 0

    def _migrate_if_needed(self) -> None:
        stored = self._safe_get(VERSION_KEY, "", json.loads)
        if stored == CURRENT_VERSION:
            return
        logger.info("Migrating data from version %s to %s", stored or "initial", CURRENT_VERSION)
        try:
            self._safe_set(VERSION_KEY, json.dumps(CURRENT_VERSION))
        except StorageError as exc:
            logger.warning("Could not record data version: %s", exc)

    # -- progress -------------------------------------------------------------

    def get_progress(self) -> UserProgress | None:
        self._migrate_if_needed()
        return self._safe_get(PROGRESS_KEY, None, UserProgress.model_validate_json)

    def save_progress(self, progress: UserProgress) -> None:
        try:
            self._safe_set(PROGRESS_KEY, progress.model_dump_json())
        except StorageError:
            logger.error("Failed to save progress for test %s", progress.test_id)
            raise

    def clear_progress(self) -> None:
        try:
            self._safe_remove(PROGRESS_KEY)
        except StorageError:
            logger.error("Failed to clear progress")
            raise

    def has_active_test(self, test_type: str | None = None) -> bool:
        progress = self.get_progress()
        if progress is None or progress.is_completed:
            return False
        if test_type and progress.test_type != test_type:
            return False
        return True

    def autosave_progress(self, progress: UserProgress) -> None:
        if self.get_preferences().auto_save:
            self.save_progress(progress)

    def check_session_timeout(self, current_ms: int | None = None) -> bool:
        progress = self.get_progress()
        if progress is None:
            return False
        timeout_ms = settings.session_timeout_hours * 60 * 60 * 1000
        if (current_ms or now_ms()) - progress.start_time > timeout_ms:
            logger.info("Session timeout detected, clearing progress for %s", progress.test_id)
            self.clear_progress()
            return True
        return False

    # -- history --------------------------------------------------------------

    def get_history(self) -> list[TestResults]:
        self._migrate_if_needed()
        return self._safe_get(HISTORY_KEY, [], _history_adapter.validate_json)

    def add_result(self, result: TestResults) -> None:
        history = [result, *self.get_history()][: self.history_limit]
        try:
            self._safe_set(HISTORY_KEY, _history_adapter.dump_json(history).decode("utf-8"))
        except StorageError:
            logger.error("Failed to add test result %s", result.test_id)
            raise

    def get_history_by_type(self, test_type: str) -> list[TestResults]:
        return [result for result in self.get_history() if result.test_type == test_type]

    def get_latest_result(self, test_type: str | None = None) -> TestResults | None:
        history = self.get_history_by_type(test_type) if test_type else self.get_history()
        return history[0] if history else None

    def clear_history(self) -> None:
        self._safe_set(HISTORY_KEY, "[]")

    # -- preferences ----------------------------------------------------------

    def get_preferences(self) -> UserPreferences:
        self._migrate_if_needed()
        return self._safe_get(PREFERENCES_KEY, UserPreferences(), UserPreferences.model_validate_json)

    def save_preferences(self, partial: dict) -> UserPreferences:
        merged = {**self.get_preferences().model_dump(), **partial}
        updated = UserPreferences.model_validate(merged)
        self._safe_set(PREFERENCES_KEY, updated.model_dump_json())
        return updated

    def reset_preferences(self) -> None:
        self._safe_set(PREFERENCES_KEY, UserPreferences().model_dump_json())

    # -- whole store ----------------------------------------------------------

    def get_all_stored_data(self) -> StoredData:
        return StoredData(
            progress=self.get_progress(),
            history=self.get_history(),
            preferences=self.get_preferences(),
            version=CURRENT_VERSION,
        )

    def clear_all_data(self) -> None:
        self.clear_progress()
        self.clear_history()
        self.reset_preferences()
        self._safe_set(VERSION_KEY, json.dumps(CURRENT_VERSION))

    def get_storage_usage(self) -> dict:
        try:
            used = self._usage_bytes()
        except OSError as exc:
            logger.error("Failed to calculate storage usage: %s", exc)
            return {"used": 0, "total": 0, "percentage": 0}
        total = self.quota_bytes or 0
        percentage = min(round(used / total * 100), 100) if total else 0
        return {"used": used, "total": total, "percentage": percentage}

    def validate_stored_data(self) -> dict:
        errors: list[str] = []
        progress = self.get_progress()
        if progress is not None:
            if not progress.test_id or not progress.test_type:
                errors.append("Invalid progress data: missing required fields")
            if progress.current_question_index < 0:
                errors.append("Invalid progress data: negative question index")
        try:
            raw_history = self._get_raw(HISTORY_KEY)
            if raw_history is not None and not isinstance(json.loads(raw_history), list):
                errors.append("Invalid history data: not an array")
        except (OSError, ValueError) as exc:
            errors.append(f"Data validation error: {exc}")
        preferences = self.get_preferences()
        if not preferences.language or not preferences.theme:
            errors.append("Invalid preferences data: missing required fields")
        return {"valid": not errors, "errors": errors}


class InMemoryProgressStore(ProgressStore):
    def __init__(self, quota_bytes: int | None = None, history_limit: int | None = None):
        super().__init__(quota_bytes, history_limit)
        self._items: dict[str, str] = {}

    def _get_raw(self, key: str) -> str | None:
        return self._items.get(key)

    def _set_raw(self, key: str, value: str) -> None:
        self._items[key] = value

    def _remove_raw(self, key: str) -> None:
        self._items.pop(key, None)

    def _usage_bytes(self) -> int:
        return sum(len(value.encode("utf-8")) + len(key) for key, value in self._items.items())


class FileProgressStore(ProgressStore):
    """One JSON file per key under base_dir."""

    def __init__(self, base_dir: Path | str | None = None, quota_bytes: int | None = None, history_limit: int | None = None):
        super().__init__(quota_bytes, history_limit)
        self.base = Path(base_dir or settings.runtime_data_dir)
        self.base.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.base / f"{key}.json"

    def _get_raw(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _set_raw(self, key: str, value: str) -> None:
        self._path(key).write_text(value, encoding="utf-8")

    def _remove_raw(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def _usage_bytes(self) -> int:
        total = 0
        for key in STORAGE_KEYS:
            path = self._path(key)
            if path.exists():
                total += path.stat().st_size + len(key)
        return total
