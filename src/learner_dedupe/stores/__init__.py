from learner_dedupe.stores.memory import InMemoryIdentityStore
from learner_dedupe.stores.sqlite import SqliteIdentityStore

__all__ = ["InMemoryIdentityStore", "SqliteIdentityStore"]
