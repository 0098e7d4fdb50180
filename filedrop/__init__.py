"""FileDrop: file distribution over a pending/completed job queue."""
from filedrop.config import VERSION

__version__ = VERSION
