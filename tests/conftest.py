import copy
from typing import Any, Dict, List

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from edo.models.document import DocumentLine
from edo.models.product import SEED_CATALOG, seed_catalog
from edo.tools.edo_client import EdoClient
from edo.workflow.controller import EdoConsole

BACKEND_URL = "http://edo.test"

# Feed in the provider's own naming for the first document, backend naming for the second
FEED = [
    {
        "DocflowId": "DF-001",
        "MessageId": "msg-1",
        "DocflowStatus": "incoming",
        "CounterpartyBoxId": "ООО «Молочный двор»",
        "SendDateTime": "2025-03-01T10:15:00Z",
        "DocumentNumber": "УПД №77",
        "total": "15230,50",
    },
    {
        "docflowId": "DF-002",
        "documentId": "doc-2",
        "status": "signed",
        "counterparty": "ИП Петров",
        "date": "2025-03-02T08:00:00Z",
        "number": "УПД №78",
        "total": 990,
    },
]

PARSE_ITEMS = [
    {
        "Product": "Сыр Моцарелла 45%", "Quantity": "10", "UnitName": "кг",
        "Price": "820,00", "Subtotal": "8200", "TaxRate": "20%",
        "Gtin": "4601234000017", "ItemCode": "A001",
    },
    {
        "Product": "Коробка для пиццы 33 см", "Quantity": 100, "UnitName": "шт",
        "Price": 35, "Subtotal": 3500, "TaxRate": "20%", "ItemVendorCode": "BOX-33",
    },
    {
        "Product": "Базилик свежий", "Quantity": 2, "UnitName": "кг",
        "Price": 1200, "Subtotal": 2400, "TaxRate": "10%", "BatchNumber": "B-17",
    },
]


class FakeBackend:
    """
    In-process stand-in for the EDO backend.

    Every route records its call; `fail(route, status)` makes a route answer
    with that status and an `{ok: false, error}` body (404 reads as "not configured").
    """

    def __init__(self):
        self.documents: List[Dict[str, Any]] = copy.deepcopy(FEED)
        self.parse_items: List[Dict[str, Any]] = copy.deepcopy(PARSE_ITEMS)
        self.products: List[Dict[str, Any]] = [product.to_payload() for product in SEED_CATALOG]
        self.lines: Dict[str, List[Dict[str, Any]]] = {}
        self.auto_match_response: Dict[str, Any] = {"ok": True, "matched": 0, "lines": []}
        self.sync_response: Dict[str, Any] = {"ok": True}
        self.failures: Dict[str, int] = {}
        self.calls: List[str] = []
        self.bodies: Dict[str, Any] = {}
        self.headers: Dict[str, str] = {}
        self.app = self._build_app()

    def fail(self, route: str, status_code: int):
        self.failures[route] = status_code

    def called(self, route: str) -> bool:
        return route in self.calls

    async def _respond(self, route: str, request: Request, payload: Dict[str, Any]):
        self.calls.append(route)
        self.headers = dict(request.headers)
        if request.method in ("POST", "DELETE"):
            body = await request.body()
            self.bodies[route] = await request.json() if body else None
        status_code = self.failures.get(route)
        if status_code:
            return JSONResponse(status_code=status_code, content={"ok": False, "error": f"{route} failed"})
        return payload

    def _build_app(self) -> FastAPI:
        app = FastAPI()
        backend = self

        @app.get("/config")
        async def config(request: Request):
            return await backend._respond("config", request, {"ok": True, "diadocConfigured": True})

        @app.get("/documents")
        async def documents(request: Request):
            return await backend._respond("documents", request, {"ok": True, "docs": backend.documents})

        @app.get("/documents/{docflow_id}/parse")
        async def parse(docflow_id: str, request: Request):
            return await backend._respond("parse", request, {
                "ok": True, "xml": f"<Файл ИдФайл='{docflow_id}'/>", "items": backend.parse_items,
            })

        @app.get("/documents/{docflow_id}/lines")
        async def lines(docflow_id: str, request: Request):
            return await backend._respond("lines", request, {"ok": True, "lines": backend.lines.get(docflow_id, [])})

        @app.post("/documents/{docflow_id}/matches/auto")
        async def auto_match(docflow_id: str, request: Request):
            return await backend._respond("auto_match", request, backend.auto_match_response)

        @app.post("/documents/{docflow_id}/lines/{index}/match")
        async def set_match(docflow_id: str, index: int, request: Request):
            return await backend._respond("set_match", request, {"ok": True})

        @app.delete("/documents/{docflow_id}/lines/{index}/match")
        async def clear_match(docflow_id: str, index: int, request: Request):
            return await backend._respond("clear_match", request, {"ok": True})

        @app.get("/inventory/products")
        async def list_products(request: Request):
            return await backend._respond("list_products", request, {"ok": True, "products": backend.products})

        @app.post("/inventory/products")
        async def create_product(request: Request):
            response = await backend._respond("create_product", request, {"ok": True})
            if isinstance(response, dict):
                product = {"id": f"prd-{900 + len(backend.products)}", **backend.bodies["create_product"]}
                backend.products.append(product)
                response = {"ok": True, "product": product}
            return response

        @app.post("/receipts")
        async def receipts(request: Request):
            return await backend._respond("receipts", request, {"ok": True, "receiptId": "rcpt-1"})

        for action in ("sign", "send", "reject"):
            app.add_api_route(
                f"/documents/{{docflow_id}}/{action}", self._signature_route(action), methods=["POST"],
            )

        @app.post("/documents/{docflow_id}/sync")
        async def sync(docflow_id: str, request: Request):
            return await backend._respond("sync", request, backend.sync_response)

        return app

    def _signature_route(self, action: str):
        async def route(docflow_id: str, request: Request):
            return await self._respond(action, request, {"ok": True, "status": action})
        return route


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def edo_client(backend):
    return EdoClient(base_url=BACKEND_URL, transport=httpx.ASGITransport(app=backend.app))


@pytest.fixture
def console(edo_client):
    return EdoConsole(edo_client)


@pytest.fixture
def catalog():
    return seed_catalog()


@pytest.fixture
def mozzarella_line():
    return DocumentLine(
        index=0,
        name="Сыр Моцарелла 45%",
        quantity=10,
        unit_name="кг",
        price=820,
        subtotal=8200,
        vat_rate="20%",
        barcode="4601234000017",
        article="MOZ45",
        item_code="A001",
    )
