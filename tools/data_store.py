# --- START OF FILE tools/data_store.py ---

import json
import os
import threading
from typing import Any, Dict

from tools.logger import log_info, log_error, log_warning
from tools.config import DATA_DIR

DATA_SUFFIX = os.getenv("DATA_SUFFIX", "")


class DataStore:
    """
    Small JSON key-value store persisted to data/<name>.json.
    Keys are plain dotted strings such as "<chat_id>.filesharing"; values are any JSON type.
    Every mutation is written to disk immediately with an atomic replace.
    """

    def __init__(self, name: str, data_dir: str = DATA_DIR):
        self.name = name
        self.path = os.path.join(data_dir, f"{name}{DATA_SUFFIX}.json")
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = {}
        self.load()

    def load(self) -> Dict[str, Any]:
        """Loads the store from disk into memory."""
        fn_name = "load"
        with self._lock:
            if os.path.exists(self.path):
                try:
                    with open(self.path, "r", encoding="utf-8") as f:
                        content = f.read()
                    self._data = json.loads(content) if content.strip() else {}
                    if not isinstance(self._data, dict):
                        log_warning("DataStore", fn_name, f"Store {self.path} does not hold an object. Resetting.")
                        self._data = {}
                except (json.JSONDecodeError, OSError) as e:
                    log_error("DataStore", fn_name, f"Failed to load or parse store file {self.path}", e)
                    self._data = {}
            else:
                self._data = {}
        log_info("DataStore", fn_name, f"Store '{self.name}' loaded with {len(self._data)} keys.")
        return self._data

    def _save(self):
        # Caller holds self._lock
        temp_path = self.path + ".tmp"
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2, ensure_ascii=False)
            os.replace(temp_path, self.path)
        except (OSError, TypeError) as e:
            log_error("DataStore", "_save", f"Failed to write store file {self.path}", e)
            if os.path.exists(temp_path):
                try: os.remove(temp_path)
                except OSError: pass

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._save()

    def delete(self, key: str) -> bool:
        with self._lock:
            if key not in self._data:
                return False
            del self._data[key]
            self._save()
            return True

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def get_all(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._data)


_stores: Dict[str, DataStore] = {}
_stores_lock = threading.Lock()

def get_store(name: str) -> DataStore:
    """Returns the shared DataStore instance for name, creating it on first use."""
    with _stores_lock:
        if name not in _stores:
            _stores[name] = DataStore(name)
        return _stores[name]

# --- END OF FILE tools/data_store.py ---
