"""Token stores for authenticated accounts.

This package provides:
- TokenStore: shared contract (list/get/set/delete/clear/purge)
- MemoryStore: process-local, nothing persisted
- FileStore: AES-encrypted file with a built-in key
- SecureStore: AES-encrypted file with a random key in the OS keyring
"""

from platform_auth.stores.file_store import FileStore
from platform_auth.stores.memory_store import MemoryStore
from platform_auth.stores.secure_store import SecureStore
from platform_auth.stores.token_store import TokenStore

__all__ = [
    "FileStore",
    "MemoryStore",
    "SecureStore",
    "TokenStore",
]
