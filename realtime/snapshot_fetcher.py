"""
Snapshot fetcher for the authoritative dashboard state
"""

import asyncio
import time
from typing import Dict, Optional

import aiohttp

from core.logging_config import get_logger, log_fetch
from .exceptions import FetchError, MalformedPayloadError
from .models import Snapshot


class SnapshotFetcher:
    """Pulls the full dashboard document with a one-shot GET request"""

    def __init__(self, url: str, timeout: float = 10.0, headers: Optional[Dict[str, str]] = None):
        """
        Initialize snapshot fetcher

        Args:
            url: Snapshot resource URL
            timeout: Total request timeout in seconds
            headers: Extra request headers
        """
        self.logger = get_logger(__name__)
        self.url = url
        self.timeout = timeout
        self.headers = headers or {}

        # Stats
        self.fetch_count = 0
        self.failure_count = 0

    def fetch(self) -> Snapshot:
        """
        Fetch a snapshot, blocking the calling thread

        Must not be called from inside a running event loop; use
        fetch_async() there.

        Raises:
            FetchError: If the request or the document is bad
        """
        return asyncio.run(self.fetch_async())

    async def fetch_async(self) -> Snapshot:
        """Fetch a snapshot"""
        self.fetch_count += 1
        start_time = time.time()
        status = None

        try:
            timeout_config = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout_config) as session:
                async with session.get(self.url, headers=self.headers) as response:
                    status = response.status
                    if not 200 <= response.status < 300:
                        raise FetchError(f"Snapshot request failed: HTTP {response.status}",
                                         status=response.status)
                    try:
                        document = await response.json(content_type=None)
                    except ValueError as e:
                        raise FetchError(f"Snapshot response is not valid JSON: {e}",
                                         status=response.status) from e

            snapshot = Snapshot.from_dict(document)

        except FetchError as e:
            self._record_failure(e, start_time, status)
            raise

        except MalformedPayloadError as e:
            error = FetchError(f"Malformed snapshot: {e}", status=status)
            self._record_failure(error, start_time, status)
            raise error from e

        except aiohttp.ClientConnectorError as e:
            error = FetchError(f"Could not reach snapshot server: {e}")
            self._record_failure(error, start_time, status)
            raise error from e

        except asyncio.TimeoutError as e:
            error = FetchError(f"Snapshot request timed out after {self.timeout}s")
            self._record_failure(error, start_time, status)
            raise error from e

        except aiohttp.ClientError as e:
            error = FetchError(f"Snapshot request error: {e}")
            self._record_failure(error, start_time, status)
            raise error from e

        log_fetch(self.logger, self.url, status, (time.time() - start_time) * 1000,
                  activity_count=len(snapshot.activity),
                  history_count=len(snapshot.history))
        return snapshot

    def _record_failure(self, error: FetchError, start_time: float, status: Optional[int]):
        self.failure_count += 1
        log_fetch(self.logger, self.url, status, (time.time() - start_time) * 1000, error=error.reason)
