"""
Structured record store for the RAG pipeline.

The pipeline only ever reads business records by id; the HTTP provider talks
to a PostgREST-compatible endpoint (``GET /rest/v1/{table}?id=eq.{id}``).
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import httpx
from ragcore.utils.logging import get_logger
from ragcore.utils.exceptions import StoreUnavailable, StoreTimeout
from ragcore.utils.decorators import with_timeout
from ragcore.config.settings import StoreConfig, get_config

logger = get_logger(__name__)


class StructuredStore(ABC):
    """Abstract base class for read-only record stores."""

    @property
    def is_configured(self) -> bool:
        """Whether the store has what it needs to serve lookups."""
        return True

    @abstractmethod
    async def get_record(self, record_id: str) -> Optional[Dict[str, Any]]:
        """
        Look up one record by its opaque id.

        Args:
            record_id: Record identifier

        Returns:
            The record, or None if it does not exist

        Raises:
            StoreUnavailable: If the store cannot be read
            StoreTimeout: If the lookup exceeds its timeout
        """
        pass

    async def health_check(self) -> bool:
        """Check if the store is reachable."""
        return True

    async def close(self) -> None:
        """Release any held resources."""
        return None


class HTTPStructuredStore(StructuredStore):
    """PostgREST client built on httpx."""

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the HTTP store.

        Args:
            config: Store configuration
            client: Pre-built async HTTP client
        """
        self.config = config or get_config().store
        self.table = self.config.table
        self.timeout = self.config.timeout
        self.base_url = (self.config.url or "").rstrip("/")

        headers = {"Accept": "application/json"}
        if self.config.api_key:
            headers["apikey"] = self.config.api_key
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        self.client = client or httpx.AsyncClient(headers=headers, timeout=self.timeout)

        if self.base_url:
            logger.info(f"🗄️ Initialized structured store: {self.base_url} (table={self.table})")
        else:
            logger.warning("⚠️ STORE_URL is not set. Structured lookups will be skipped.")

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    async def get_record(self, record_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a record from ``{url}/rest/v1/{table}``.

        Raises:
            StoreUnavailable: If unconfigured or the request fails
            StoreTimeout: If the request exceeds the configured timeout
        """
        if not self.base_url:
            raise StoreUnavailable("STORE_URL is missing; structured lookups are disabled")

        try:
            response = await with_timeout(
                self.client.get(
                    f"{self.base_url}/rest/v1/{self.table}",
                    params={"id": f"eq.{record_id}", "select": "*"}
                ),
                self.timeout,
                StoreTimeout,
                "store lookup"
            )
            response.raise_for_status()
            rows = response.json()
        except StoreTimeout:
            raise
        except httpx.HTTPError as e:
            logger.error(f"❌ Store lookup failed for {record_id}: {str(e)}")
            raise StoreUnavailable(f"Store lookup failed: {str(e)}") from e
        except ValueError as e:
            raise StoreUnavailable(f"Store returned invalid JSON: {str(e)}") from e

        if isinstance(rows, list):
            record = rows[0] if rows else None
        else:
            record = rows or None

        logger.debug(f"🗄️ Store lookup {record_id}: {'found' if record else 'not found'}")
        return record

    async def health_check(self) -> bool:
        """
        Check if the store endpoint answers.

        Returns:
            True if healthy, False otherwise
        """
        if not self.base_url:
            return False
        try:
            response = await with_timeout(
                self.client.get(f"{self.base_url}/rest/v1/{self.table}", params={"limit": "1"}),
                self.timeout,
                StoreTimeout,
                "store health check"
            )
            return response.status_code < 500
        except Exception as e:
            logger.error(f"❌ Store health check failed: {str(e)}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("🔌 Structured store client closed")
