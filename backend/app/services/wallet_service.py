"""
Wallet — export credits and project unlocks behind a key-value port.

The store is injected; the in-memory implementation backs the API process
and the tests. Credits are spent once per project; an unlocked project can
be exported any number of times.
"""
import json
import logging
import threading
from typing import Dict, List, Optional, Protocol

from app.services.config import UNLOCK_COST_CREDITS

logger = logging.getLogger("constructai-wallet")

CREDITS_KEY = "constructai_credits"
UNLOCKED_KEY = "constructai_unlocked_projects"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class InMemoryKeyValueStore:

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class InsufficientCreditsError(Exception):
    pass


class WalletService:

    def __init__(self, store: KeyValueStore):
        self.store = store
        self._lock = threading.Lock()

    def balance(self) -> int:
        raw = self.store.get(CREDITS_KEY)
        return int(raw) if raw else 0

    def _unlocked(self) -> List[str]:
        raw = self.store.get(UNLOCKED_KEY)
        return json.loads(raw) if raw else []

    def add_credits(self, amount: int) -> int:
        if amount <= 0:
            raise ValueError(f"Credit top-up must be positive, got {amount}")
        with self._lock:
            new_balance = self.balance() + amount
            self.store.set(CREDITS_KEY, str(new_balance))
        logger.info(f"Wallet topped up by {amount} credits (balance {new_balance})")
        return new_balance

    def is_unlocked(self, project_id: str) -> bool:
        return project_id in self._unlocked()

    def unlock_project(self, project_id: str) -> bool:
        """
        Spend one credit to unlock *project_id*. Already-unlocked projects are
        free; returns False when the balance cannot cover the unlock.
        """
        with self._lock:
            unlocked = self._unlocked()
            if project_id in unlocked:
                return True
            balance = self.balance()
            if balance < UNLOCK_COST_CREDITS:
                logger.info(f"Unlock refused for {project_id}: balance {balance}")
                return False
            self.store.set(CREDITS_KEY, str(balance - UNLOCK_COST_CREDITS))
            unlocked.append(project_id)
            self.store.set(UNLOCKED_KEY, json.dumps(unlocked))
        logger.info(f"Project {project_id} unlocked", extra={"session_id": project_id})
        return True

    def require_unlock(self, project_id: str) -> None:
        if not self.unlock_project(project_id):
            raise InsufficientCreditsError(f"Not enough credits to unlock project {project_id}")
