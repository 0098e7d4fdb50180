from .store import ListStore, MemoryListStore, RedisListStore, create_store
from .job_queue import JobQueue

__all__ = ["ListStore", "MemoryListStore", "RedisListStore", "create_store", "JobQueue"]
