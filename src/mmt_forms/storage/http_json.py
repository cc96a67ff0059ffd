"""JSON document served over HTTP.

The document is fetched with GET (a timestamp parameter defeats caches; 404
means nothing was stored yet) and written back whole with PUT.
"""

import time

import requests

from mmt_forms.errors import StorageError
from mmt_forms.logging import get_logger
from mmt_forms.storage.document import DocumentStorage

log = get_logger(__name__)


class HttpJsonStorage(DocumentStorage):
    """Database kept in one JSON document on a web server."""

    def __init__(
        self, url: str, session: requests.Session | None = None, timeout: float = 30.0
    ) -> None:
        super().__init__()
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout

    def _read(self) -> dict | None:
        try:
            response = self.session.request(
                "GET",
                self.url,
                params={"t": int(time.time() * 1000)},
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StorageError(f"GET {self.url} failed: {e}") from e
        if response.status_code == 404:
            log.info("database_document_missing", url=self.url)
            return None
        if not response.ok:
            raise StorageError(f"GET {self.url} returned HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as e:
            raise StorageError(f"GET {self.url} did not return JSON: {e}") from e

    def _write(self, document: dict) -> None:
        try:
            response = self.session.request(
                "PUT",
                self.url,
                json=document,
                headers={"If-Match": "*"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StorageError(f"PUT {self.url} failed: {e}") from e
        if not response.ok:
            raise StorageError(f"PUT {self.url} returned HTTP {response.status_code}")
        log.debug("database_saved", url=self.url)
