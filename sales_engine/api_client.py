"""
Data Provider API Client Module

Handles authentication, retries, pagination, and error handling
for the headless REST data provider behind the dashboard.

Read contract: GET /items/{collection}?fields=...&limit=N&offset=M&filter[...]
returns a {"data": [...]} envelope.
"""

import time
import logging
import threading
from typing import Dict, List, Optional, Any, Sequence, Union

import requests

from sales_engine.config import ProviderSettings

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BODY_EXCERPT_LIMIT = 1200


class DataProviderError(Exception):
    """Fatal fetch error for one upstream collection"""

    def __init__(
        self,
        message: str,
        collection: str,
        status: Optional[int] = None,
        body: str = "",
        url: str = ""
    ):
        super().__init__(message)
        self.collection = collection
        self.status = status
        self.body = (body or "")[:BODY_EXCERPT_LIMIT]
        self.url = url

    def as_dict(self) -> Dict[str, Any]:
        return {
            "error": str(self),
            "collection": self.collection,
            "status": self.status,
            "body": self.body,
            "url": self.url,
        }


class DataProviderClient:
    """
    Read-only client for the data provider with pagination, retries and timeouts.

    Only transient pressure (429/503) is retried, with linear backoff.
    Timeouts, connection failures and any other non-2xx response are fatal.
    """

    MAX_RETRIES = 3
    RETRY_BACKOFF = 0.4  # seconds, multiplied by the attempt number
    MAX_PAGES = 400
    RETRY_STATUSES = (429, 503)

    def __init__(self, settings: Optional[ProviderSettings] = None, session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            settings: Connection settings (defaults to ProviderSettings.from_env())
            session: Optional pre-built session (used by tests)
        """
        self.settings = settings or ProviderSettings.from_env()
        self.base_url = self.settings.base_url

        # One session per fetch thread, unless a session is injected
        self._shared_session = self._prepare_session(session) if session is not None else None
        self._local = threading.local()

        logger.info(f"Initialized data provider client for: {self.base_url}")

    def _prepare_session(self, session: requests.Session) -> requests.Session:
        session.headers.update({"Accept": "application/json"})
        if self.settings.token:
            session.headers.update({"Authorization": f"Bearer {self.settings.token}"})
        return session

    @property
    def session(self) -> requests.Session:
        """Session for the calling thread"""
        if self._shared_session is not None:
            return self._shared_session

        session = getattr(self._local, "session", None)
        if session is None:
            session = self._prepare_session(requests.Session())
            self._local.session = session
        return session

    @property
    def has_token(self) -> bool:
        return bool(self.settings.token)

    def _make_request(
        self,
        collection: str,
        params: Dict[str, Any],
        attempt: int = 1
    ) -> List[Dict[str, Any]]:
        """
        Fetch one page of a collection.

        Args:
            collection: Collection name (e.g. 'sales_invoice')
            params: Query parameters (fields, limit, offset, filters)
            attempt: Current attempt number (1-based)

        Returns:
            The records in the response's data envelope

        Raises:
            DataProviderError: For timeouts, unreachable source, non-retryable
                statuses, exhausted retries, or a malformed response envelope
        """
        url = f"{self.base_url}/items/{collection}"

        try:
            logger.debug(f"GET {url} with params: {params}")
            response = self.session.get(url, params=params, timeout=self.settings.timeout)
        except requests.exceptions.Timeout as e:
            raise DataProviderError(
                f"Request to {collection} timed out after {self.settings.timeout}s",
                collection=collection,
                body=str(e),
                url=url
            )
        except requests.exceptions.RequestException as e:
            raise DataProviderError(
                f"Request to {collection} failed: {e}",
                collection=collection,
                body=str(e),
                url=url
            )

        if response.status_code in self.RETRY_STATUSES:
            if attempt <= self.MAX_RETRIES:
                delay = self.RETRY_BACKOFF * attempt
                logger.warning(
                    f"{collection}: transient status {response.status_code}. "
                    f"Retry {attempt}/{self.MAX_RETRIES} in {delay:.1f} seconds..."
                )
                time.sleep(delay)
                return self._make_request(collection, params, attempt + 1)
            raise DataProviderError(
                f"{collection}: status {response.status_code} - max retries reached",
                collection=collection,
                status=response.status_code,
                body=response.text,
                url=response.url or url
            )

        if not 200 <= response.status_code < 300:
            raise DataProviderError(
                f"Data provider request failed ({response.status_code}) for {collection}",
                collection=collection,
                status=response.status_code,
                body=response.text,
                url=response.url or url
            )

        # A 2xx page without a data list is fatal, never an empty page
        try:
            payload = response.json()
        except ValueError:
            raise DataProviderError(
                f"Data provider returned a non-JSON body for {collection}",
                collection=collection,
                status=response.status_code,
                body=response.text,
                url=response.url or url
            )

        records = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(records, list):
            raise DataProviderError(
                f"Data provider response for {collection} has no data list",
                collection=collection,
                status=response.status_code,
                body=response.text,
                url=response.url or url
            )

        return records

    @staticmethod
    def _build_params(
        fields: Union[str, Sequence[str]],
        filters: Optional[Dict[str, Any]]
    ) -> Dict[str, Any]:
        params = {"fields": fields if isinstance(fields, str) else ",".join(fields)}
        if filters:
            params.update(filters)
        return params

    def fetch_all_pages(
        self,
        collection: str,
        fields: Union[str, Sequence[str]],
        filters: Optional[Dict[str, Any]] = None,
        page_size: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Page through a collection with limit/offset until a short page is returned.

        Stops after MAX_PAGES pages even if the source keeps returning full pages.

        Args:
            collection: Collection name
            fields: Field projection (list or comma-separated string)
            filters: Extra query parameters such as filter[...] expressions
            page_size: Records per page (defaults to the configured page size)

        Returns:
            List of all records across all pages
        """
        page_size = page_size or self.settings.page_size
        params = self._build_params(fields, filters)
        params["limit"] = page_size

        all_records = []
        offset = 0

        for page in range(1, self.MAX_PAGES + 1):
            params["offset"] = offset
            logger.info(f"Fetching page {page} from {collection}...")

            records = self._make_request(collection, dict(params))
            all_records.extend(records)

            if len(records) < page_size:
                break
            offset += page_size
        else:
            logger.warning(f"{collection}: stopped after {self.MAX_PAGES} pages")

        logger.info(f"Retrieved {len(all_records)} total records from {collection}")
        return all_records

    def fetch_all(
        self,
        collection: str,
        fields: Union[str, Sequence[str]],
        filters: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Fetch a small reference collection in one unbounded request (limit=-1).

        Args:
            collection: Collection name
            fields: Field projection
            filters: Extra query parameters

        Returns:
            List of records
        """
        params = self._build_params(fields, filters)
        params["limit"] = -1

        records = self._make_request(collection, params)
        logger.info(f"Retrieved {len(records)} records from {collection}")
        return records
