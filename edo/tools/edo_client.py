import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from edo.config import settings
from edo.exceptions import BackendError, BackendNotConfigured
from edo.models.matching import LineMatch
from edo.models.product import ProductDraft
from edo.models.receipt import ReceiptRequest

logger = logging.getLogger(__name__)

# Routes answering with these mean the feature is not wired up on the server
NOT_CONFIGURED_STATUSES = (404, 405)


def _doc_path(docflow_id: str, *parts: str) -> str:
    path = f"/documents/{quote(str(docflow_id), safe='')}"
    for part in parts:
        path += f"/{part}"
    return path


class EdoClient:
    """
    Async client for the EDO backend (document feed, line matching, receipts,
    signatures). Every call returns the decoded JSON object or raises
    BackendNotConfigured / BackendError.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_role: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.EDO_API_BASE).rstrip("/")
        self.user_role = user_role or settings.EDO_USER_ROLE
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"X-User-Role": self.user_role},
            transport=transport,
        )

    async def __aenter__(self) -> "EdoClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            try:
                response = await self._client.request(method, path, json=json, params=params)
            except httpx.HTTPError as e:
                raise BackendError(str(e) or e.__class__.__name__, path=path) from e

            if response.status_code in NOT_CONFIGURED_STATUSES:
                raise BackendNotConfigured(path, response.status_code)

            if response.is_error:
                raise BackendError(
                    self._error_message(response) or f"HTTP {response.status_code}",
                    path=path,
                    status_code=response.status_code,
                )

            try:
                payload = response.json()
            except ValueError as e:
                raise BackendError("Invalid JSON in response", path=path, status_code=response.status_code) from e

            if not isinstance(payload, dict):
                raise BackendError("Unexpected response shape", path=path, status_code=response.status_code)
            if payload.get("ok") is False:
                raise BackendError(payload.get("error") or "Request failed", path=path, status_code=response.status_code)
            return payload
        except BackendError as e:
            logger.warning(f"[EDO] API call failed: {method} {path}: {e}")
            raise

    @staticmethod
    def _error_message(response: httpx.Response) -> Optional[str]:
        try:
            payload = response.json()
        except ValueError:
            return None
        if isinstance(payload, dict):
            return payload.get("error")
        return None

    # Configuration & catalog

    async def get_config(self) -> Dict[str, Any]:
        return await self.request("GET", "/config")

    async def list_products(self) -> Dict[str, Any]:
        return await self.request("GET", "/inventory/products")

    async def create_product(self, draft: ProductDraft) -> Dict[str, Any]:
        return await self.request("POST", "/inventory/products", json=draft.to_payload())

    # Documents & lines

    async def list_documents(self) -> Dict[str, Any]:
        return await self.request("GET", "/documents")

    async def parse_document(self, docflow_id: str) -> Dict[str, Any]:
        return await self.request("GET", _doc_path(docflow_id, "parse"))

    async def get_lines(self, docflow_id: str, with_candidates: bool = True) -> Dict[str, Any]:
        params = {"withCandidates": 1} if with_candidates else None
        return await self.request("GET", _doc_path(docflow_id, "lines"), params=params)

    async def auto_match(self, docflow_id: str, threshold: float) -> Dict[str, Any]:
        return await self.request(
            "POST",
            _doc_path(docflow_id, "matches", "auto"),
            json={"threshold": threshold, "withCandidates": True},
        )

    async def set_match(self, docflow_id: str, line_index: int, match: LineMatch) -> Dict[str, Any]:
        body = {
            "productId": match.product_id,
            "source": match.source or "manual",
            "score": match.score,
            "manual": match.manual,
            "comment": match.comment,
        }
        return await self.request(
            "POST", _doc_path(docflow_id, "lines", str(line_index), "match"),
            json=body, params={"withCandidates": 1},
        )

    async def clear_match(self, docflow_id: str, line_index: int) -> Dict[str, Any]:
        return await self.request(
            "DELETE", _doc_path(docflow_id, "lines", str(line_index), "match"),
            params={"withCandidates": 1},
        )

    # Receipts & signatures

    async def create_receipt(self, receipt: ReceiptRequest) -> Dict[str, Any]:
        return await self.request("POST", "/receipts", json=receipt.to_payload())

    async def sign_document(self, docflow_id: str) -> Dict[str, Any]:
        return await self.request("POST", _doc_path(docflow_id, "sign"))

    async def send_document(self, docflow_id: str) -> Dict[str, Any]:
        return await self.request("POST", _doc_path(docflow_id, "send"))

    async def reject_document(self, docflow_id: str, reason: str) -> Dict[str, Any]:
        return await self.request("POST", _doc_path(docflow_id, "reject"), json={"reason": reason})

    async def sync_document(self, docflow_id: str) -> Dict[str, Any]:
        return await self.request("POST", _doc_path(docflow_id, "sync"))
