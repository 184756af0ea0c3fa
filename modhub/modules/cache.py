"""
Cache Invalidation.

Flushes everything derived from the installed module set: loaded
implementation instances, cached descriptors and the on-disk cache
directory.
"""

import logging
import shutil
from pathlib import Path

from modhub.modules import loader

logger = logging.getLogger(__name__)


class CacheInvalidator:
    """
    Clears module-derived caches.

    Args:
        cache_dir: Directory of derived files (emptied, not removed)
        repository: Registry whose descriptor cache is dropped (optional)
    """

    def __init__(self, cache_dir: Path | None = None, repository=None):
        self.cache_dir = cache_dir
        self.repository = repository

    def clear(self) -> None:
        loader.clear_cache()
        if self.repository is not None:
            self.repository.clear_cache()

        if self.cache_dir is not None and self.cache_dir.is_dir():
            for entry in self.cache_dir.iterdir():
                try:
                    if entry.is_dir() and not entry.is_symlink():
                        shutil.rmtree(entry)
                    else:
                        entry.unlink()
                except OSError as e:
                    logger.warning("Could not remove cache entry %s: %s", entry, e)

        logger.info("Module caches cleared")
