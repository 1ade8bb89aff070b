from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pydantic import ValidationError as PydanticValidationError

from .kv_store import JsonFileKeyValueStore, KeyValueStore
from .models import StoredCredential

logger = logging.getLogger(__name__)

CREDENTIAL_KEY = "session"


@dataclass
class AuthStore:
    """Credential store: the opaque token plus a minimal user profile."""

    store: KeyValueStore = field(default_factory=JsonFileKeyValueStore)
    key: str = CREDENTIAL_KEY

    def save(self, credential: StoredCredential) -> None:
        self.store.set(self.key, credential.model_dump(mode="json"))

    def load(self) -> StoredCredential | None:
        data = self.store.get(self.key)
        if data is None:
            return None
        try:
            return StoredCredential.model_validate(data)
        except PydanticValidationError:
            logger.warning("credential_store_unreadable")
            self.clear()
            return None

    def clear(self) -> None:
        self.store.remove(self.key)
