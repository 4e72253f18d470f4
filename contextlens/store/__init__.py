from contextlens.store.encryption import derive_key, load_or_create_key
from contextlens.store.events import EventStore

__all__ = ["EventStore", "derive_key", "load_or_create_key"]
