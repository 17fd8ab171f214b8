"""Document store access for the posts collection.

Posts live in an Appwrite database collection. DocumentStore is the narrow
contract the rest of the service depends on; AppwriteDocumentStore implements
it over the REST API.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Iterator, Optional

import httpx

from audiostream.core.appwrite import error_message

logger = logging.getLogger(__name__)


class DocumentStoreError(Exception):
    """Raised when a document store call fails."""


class DocumentNotFoundError(DocumentStoreError):
    """Raised when a document does not exist."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class Query:
    """Builders for Appwrite query strings."""

    @staticmethod
    def is_not_null(attribute: str) -> str:
        return json.dumps({"method": "isNotNull", "attribute": attribute})

    @staticmethod
    def is_null(attribute: str) -> str:
        return json.dumps({"method": "isNull", "attribute": attribute})

    @staticmethod
    def equal(attribute: str, value: Any) -> str:
        values = value if isinstance(value, list) else [value]
        return json.dumps({"method": "equal", "attribute": attribute, "values": values})

    @staticmethod
    def limit(count: int) -> str:
        return json.dumps({"method": "limit", "values": [count]})

    @staticmethod
    def cursor_after(document_id: str) -> str:
        return json.dumps({"method": "cursorAfter", "values": [document_id]})


class DocumentStore(ABC):
    """Abstract document store over a single collection."""

    @abstractmethod
    def get_document(self, document_id: str) -> dict[str, Any]:
        """Fetch one document by id.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """

    @abstractmethod
    def update_document(self, document_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Apply a partial update and return the updated document."""

    @abstractmethod
    def list_documents(self, queries: Optional[list[str]] = None) -> list[dict[str, Any]]:
        """Return one page of documents matching the queries."""

    def iter_documents(
        self,
        queries: Optional[list[str]] = None,
        page_size: int = 100,
    ) -> Iterator[dict[str, Any]]:
        """Iterate every matching document, paginating with a cursor."""
        base = list(queries or [])
        cursor: Optional[str] = None
        while True:
            page_queries = base + [Query.limit(page_size)]
            if cursor:
                page_queries.append(Query.cursor_after(cursor))
            page = self.list_documents(page_queries)
            yield from page
            if len(page) < page_size:
                return
            cursor = page[-1]["$id"]


class AppwriteDocumentStore(DocumentStore):
    """DocumentStore backed by the Appwrite databases REST API."""

    def __init__(self, client: httpx.Client, database_id: str, collection_id: str):
        self.client = client
        self.database_id = database_id
        self.collection_id = collection_id

    @property
    def _documents_path(self) -> str:
        return f"/databases/{self.database_id}/collections/{self.collection_id}/documents"

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise DocumentStoreError(f"Document store request failed: {e}") from e

    def get_document(self, document_id: str) -> dict[str, Any]:
        response = self._request("GET", f"{self._documents_path}/{document_id}")
        if response.status_code == 404:
            raise DocumentNotFoundError(document_id)
        if response.is_error:
            raise DocumentStoreError(
                f"Failed to fetch document {document_id}: {error_message(response)}"
            )
        return response.json()

    def update_document(self, document_id: str, data: dict[str, Any]) -> dict[str, Any]:
        response = self._request(
            "PATCH",
            f"{self._documents_path}/{document_id}",
            json={"data": data},
        )
        if response.status_code == 404:
            raise DocumentNotFoundError(document_id)
        if response.is_error:
            raise DocumentStoreError(
                f"Failed to update document {document_id}: {error_message(response)}"
            )
        logger.debug(f"Updated document {document_id}: {sorted(data)}")
        return response.json()

    def list_documents(self, queries: Optional[list[str]] = None) -> list[dict[str, Any]]:
        params = {"queries[]": queries} if queries else None
        response = self._request("GET", self._documents_path, params=params)
        if response.is_error:
            raise DocumentStoreError(f"Failed to list documents: {error_message(response)}")
        return response.json().get("documents", [])
