"""
Base collector class — Abstract interface for directory data collectors.
Wraps collection with timing, caching and error capture.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

from ..graph.client import GraphClient, GraphAPIError
from ..cache.store import ScanCache
from ..config import CollectionConfig

logger = logging.getLogger("group_cycle_engine.collectors")


class CollectorResult:
    """Standardized result from a collector."""

    def __init__(self, collector_name: str):
        self.collector_name = collector_name
        self.data: dict[str, Any] = {}
        self.metadata: dict[str, Any] = {
            "collector": collector_name,
            "started_at": None,
            "completed_at": None,
            "duration_seconds": 0,
            "items_collected": 0,
            "errors": [],
            "warnings": [],
            "endpoints_queried": 0,
            "from_cache": False,
            "partial": False,           # Some data was unavailable; never cached
        }

    def add_data(self, key: str, value: Any):
        self.data[key] = value
        if isinstance(value, list):
            self.metadata["items_collected"] += len(value)
        else:
            self.metadata["items_collected"] += 1

    def add_error(self, error: str):
        self.metadata["errors"].append(error)
        logger.error(f"[{self.collector_name}] {error}")

    def add_warning(self, warning: str, partial: bool = False):
        self.metadata["warnings"].append(warning)
        if partial:
            self.metadata["partial"] = True
        logger.warning(f"[{self.collector_name}] {warning}")

    @property
    def ok(self) -> bool:
        return not self.metadata["errors"]

    @property
    def cacheable(self) -> bool:
        return bool(self.data) and self.ok and not self.metadata["partial"]

    def to_dict(self) -> dict:
        return {
            "data": self.data,
            "metadata": self.metadata,
        }


class BaseCollector(ABC):
    """
    Abstract base class for all collectors.

    Subclasses implement collect() to gather data from Graph. The base class
    provides cache lookup/store, timing metadata, and turns any exception
    into a recorded error instead of propagating it.
    """

    name: str = "base"
    description: str = "Base collector"

    def __init__(
        self,
        graph: GraphClient,
        config: CollectionConfig,
        cache: Optional[ScanCache] = None,
        scan_id: str = "",
        cache_scope: str = "",
    ):
        self.graph = graph
        self.config = config
        self.cache = cache
        self.scan_id = scan_id
        self.cache_scope = cache_scope

    @property
    def cache_key(self) -> str:
        return f"collector:{self.name}:{self.cache_scope}"

    async def execute(self) -> CollectorResult:
        """Execute the collector with timing, caching, and error handling."""
        result = CollectorResult(self.name)
        result.metadata["started_at"] = time.time()
        logger.info(f"[{self.name}] Starting collection...")

        try:
            cached = self.cache.get(self.cache_key) if self.cache else None
            if cached:
                logger.info(f"[{self.name}] Using cached data.")
                result.data = cached
                result.metadata["from_cache"] = True
            else:
                await self.collect(result)
                if self.cache and result.cacheable:
                    self.cache.put(self.cache_key, result.data, self.scan_id)
                elif self.cache and result.metadata["partial"]:
                    logger.info(f"[{self.name}] Partial result not cached.")
        except Exception as e:
            result.add_error(f"Collection failed: {type(e).__name__}: {e}")
            logger.exception(f"[{self.name}] Collection failed")

        result.metadata["completed_at"] = time.time()
        result.metadata["duration_seconds"] = round(
            result.metadata["completed_at"] - result.metadata["started_at"], 2
        )
        logger.info(
            f"[{self.name}] Completed in {result.metadata['duration_seconds']}s — "
            f"{result.metadata['items_collected']} items"
        )
        return result

    @abstractmethod
    async def collect(self, result: CollectorResult):
        """
        Implement data collection logic.
        Add data to result via result.add_data(key, value).
        """
        raise NotImplementedError

    async def safe_get_all(self, endpoint: str, result: CollectorResult, **kwargs) -> list:
        """Get all pages of an endpoint, recording failures on the result."""
        try:
            data = await self.graph.get_all_pages(endpoint, **kwargs)
            result.metadata["endpoints_queried"] += 1
            return data
        except GraphAPIError as e:
            if e.status_code == 403:
                result.add_warning(f"Permission denied: {endpoint} — {e}", partial=True)
            else:
                result.add_error(f"Failed to paginate {endpoint}: {e}")
            return []
