"""
Result sinks: where finished interviews and their feedback are stored.
"""
import asyncio
import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Any, List, Optional

logger = logging.getLogger("results")


class ResultSink(ABC):
    """Receives one record per finished interview."""

    @abstractmethod
    async def save(self, record: Dict[str, Any]) -> Optional[str]:
        """Persist ``record``. Returns an identifier for the stored result."""


class JsonResultStore(ResultSink):
    """Writes one JSON file per interview attempt."""

    def __init__(self, results_dir: str):
        self.results_dir = results_dir

    def _path_for(self, record: Dict[str, Any]) -> str:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        record_id = record.get("session_id") or uuid.uuid4().hex[:8]
        return os.path.join(self.results_dir, f"interview_{stamp}_{record_id}.json")

    def _write(self, path: str, record: Dict[str, Any]) -> None:
        os.makedirs(self.results_dir, exist_ok=True)
        tmp_path = path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)

    async def save(self, record: Dict[str, Any]) -> str:
        path = self._path_for(record)
        await asyncio.to_thread(self._write, path, record)
        logger.info(f"Saved interview result: {path}")
        return path

    def load_all(self) -> List[Dict[str, Any]]:
        """Load every stored record, oldest first."""
        if not os.path.isdir(self.results_dir):
            return []
        records = []
        for name in sorted(os.listdir(self.results_dir)):
            if not (name.startswith("interview_") and name.endswith(".json")):
                continue
            try:
                with open(os.path.join(self.results_dir, name), "r", encoding="utf-8") as f:
                    records.append(json.load(f))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping unreadable result {name}: {e}")
        return records
