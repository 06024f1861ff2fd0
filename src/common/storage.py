# ABOUTME: Provides the per-learner persistence collaborator behind a narrow load/save interface.
# ABOUTME: Ships an in-memory store and a JSON-file store that degrade to defaults on failure.

from __future__ import annotations

import copy
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from .config import ERROR_HISTORY_CAPACITY, QUESTION_LOG_CAPACITY, StorageConfig

STORAGE_VERSION = "2.0"
USER_ID_FORBIDDEN = ("/", "\\", "\0")

STORAGE_KEYS = {
    "profile": "profile",
    "question_logs": "question_logs",
    "difficulty_arms": "difficulty_arms",
    "review_queue": "review_queue",
    "skill_mastery": "skill_mastery",
    "error_patterns": "error_patterns",
    "explanation_arms": "explanation_arms",
    "error_history": "error_history",
    "storage_version": "storage_version",
}


class LearnerStore(ABC):
    """
    Load/save pairs for one learner's engine state.

    Values are plain JSON-compatible structures. Implementations must never
    raise into the engine: persistence is best-effort.
    """

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> bool:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...

    def load_profile(self) -> Dict:
        return self.get(STORAGE_KEYS["profile"], {})

    def save_profile(self, profile: Dict) -> bool:
        return self.set(STORAGE_KEYS["profile"], profile)

    def load_question_logs(self, max_records: int = QUESTION_LOG_CAPACITY) -> List[Dict]:
        return list(self.get(STORAGE_KEYS["question_logs"], []))[-max_records:]

    def save_question_logs(self, logs: List[Dict], max_records: int = QUESTION_LOG_CAPACITY) -> bool:
        return self.set(STORAGE_KEYS["question_logs"], list(logs)[-max_records:])

    def append_question_log(self, log: Dict, max_records: int = QUESTION_LOG_CAPACITY) -> bool:
        logs = self.load_question_logs(max_records)
        logs.append(log)
        return self.save_question_logs(logs, max_records)

    def load_difficulty_arms(self) -> List[Dict]:
        return self.get(STORAGE_KEYS["difficulty_arms"], [])

    def save_difficulty_arms(self, arms: List[Dict]) -> bool:
        return self.set(STORAGE_KEYS["difficulty_arms"], arms)

    def load_review_queue(self) -> List[Dict]:
        return self.get(STORAGE_KEYS["review_queue"], [])

    def save_review_queue(self, queue: List[Dict]) -> bool:
        return self.set(STORAGE_KEYS["review_queue"], queue)

    def load_skill_mastery(self) -> Dict[str, float]:
        return self.get(STORAGE_KEYS["skill_mastery"], {})

    def save_skill_mastery(self, mastery: Dict[str, float]) -> bool:
        return self.set(STORAGE_KEYS["skill_mastery"], mastery)

    def load_error_patterns(self) -> List[Dict]:
        return self.get(STORAGE_KEYS["error_patterns"], [])

    def save_error_patterns(self, patterns: List[Dict]) -> bool:
        return self.set(STORAGE_KEYS["error_patterns"], patterns)

    def load_explanation_arms(self) -> List[Dict]:
        return self.get(STORAGE_KEYS["explanation_arms"], [])

    def save_explanation_arms(self, arms: List[Dict]) -> bool:
        return self.set(STORAGE_KEYS["explanation_arms"], arms)

    def load_error_history(self, max_records: int = ERROR_HISTORY_CAPACITY) -> List[Dict]:
        return list(self.get(STORAGE_KEYS["error_history"], []))[-max_records:]

    def save_error_history(self, history: List[Dict], max_records: int = ERROR_HISTORY_CAPACITY) -> bool:
        return self.set(STORAGE_KEYS["error_history"], list(history)[-max_records:])

    def export_all(self) -> Dict[str, Any]:
        return {name: self.get(key) for name, key in STORAGE_KEYS.items()}

    def import_all(self, data: Dict[str, Any]) -> None:
        for name, value in data.items():
            key = STORAGE_KEYS.get(name)
            if key and value is not None:
                self.set(key, value)

    def clear_all(self) -> None:
        for key in STORAGE_KEYS.values():
            self.remove(key)


class InMemoryStore(LearnerStore):
    """Dictionary-backed store; values are deep-copied in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return copy.deepcopy(default)
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> bool:
        self._data[key] = copy.deepcopy(value)
        return True

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


def check_user_id(user_id: str) -> None:
    """Reject ids that would resolve outside the store root."""
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValueError("user_id must be a non-empty string")
    if ".." in user_id or any(sep in user_id for sep in USER_ID_FORBIDDEN) or user_id.strip() == ".":
        raise ValueError(f"user_id must not contain path separators or '..', got {user_id!r}")


class JsonFileStore(LearnerStore):
    """
    Stores each key as ``<root>/<user_id>/<key>.json``.

    Read and write failures are logged and reported as defaults / False so
    the engine keeps running on in-memory state.
    """

    def __init__(self, root: Path, user_id: str):
        check_user_id(user_id)
        self.root = Path(root)
        self.user_id = user_id
        self.directory = self.root / user_id
        self._migrate_if_needed()

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _migrate_if_needed(self) -> None:
        version = self.get(STORAGE_KEYS["storage_version"])
        if version is None:
            self.set(STORAGE_KEYS["storage_version"], STORAGE_VERSION)
        elif version != STORAGE_VERSION:
            logger.warning(
                f"Learner store {self.directory} has version {version}; expected {STORAGE_VERSION}. "
                "Records will be read with defaults for missing fields."
            )

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return copy.deepcopy(default)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"Failed to read {path}: {exc}; using default")
            return copy.deepcopy(default)

    def set(self, key: str, value: Any) -> bool:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(value, indent=2), encoding="utf-8")
        except (OSError, TypeError) as exc:
            logger.warning(f"Failed to write {path}: {exc}")
            return False
        return True

    def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning(f"Failed to remove {path}: {exc}")

    def storage_stats(self) -> Dict[str, Any]:
        """Byte size of each stored key."""
        items = {}
        total = 0
        for name, key in STORAGE_KEYS.items():
            path = self._path(key)
            size = path.stat().st_size if path.exists() else 0
            items[name] = {"size": size, "size_kb": round(size / 1024, 2)}
            total += size
        return {"items": items, "total_size": total, "total_size_kb": round(total / 1024, 2)}


def store_from_config(config: StorageConfig, user_id: str) -> LearnerStore:
    if config.backend == "json":
        return JsonFileStore(Path(config.root), user_id)
    if config.backend == "memory":
        return InMemoryStore()
    raise ValueError(f"Unknown storage backend: {config.backend!r} (expected 'memory' or 'json')")
