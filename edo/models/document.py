from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import ConfigDict, Field, field_validator
from edo.models.base import ApiModel, first_present, safe_number

class DocumentStatus(str, Enum):
    INCOMING = "incoming"
    LINES_PENDING = "lines-pending"
    LINES_MATCHED = "lines-matched"
    RECEIPT_CREATED = "receipt-created"
    SIGNED = "signed"
    SENT = "sent"
    REJECTED = "rejected"

    @classmethod
    def from_backend(cls, raw: Optional[str]) -> "DocumentStatus":
        """Map provider statuses (DocflowStatus and friends) onto the lifecycle."""
        value = (raw or "").strip().lower()
        try:
            return cls(value)
        except ValueError:
            pass
        if value in ("signed", "completed"):
            return cls.SIGNED
        return cls.INCOMING

class IncomingDocument(ApiModel):
    """One exchanged document as listed by the counterparty feed."""
    docflow_id: str = Field(..., description="Docflow identifier in the exchange provider")
    document_id: Optional[str] = None
    type: str = "UniversalTransferDocument"
    status: str = DocumentStatus.INCOMING.value
    direction: str = "in"
    counterparty: str = "Контрагент"
    date: str = ""
    total: float = 0.0
    number: str = ""
    cached: bool = False

    @field_validator("docflow_id", "type", "status", "direction", "counterparty", "date", "number", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return "" if v is None else str(v)

    @field_validator("document_id", mode="before")
    @classmethod
    def coerce_optional_text(cls, v):
        return None if v is None else str(v)

    @classmethod
    def normalize(cls, raw: Dict[str, Any]) -> "IncomingDocument":
        """
        Build a document from any of the historical feed schemas.

        Diadoc-style keys (DocflowId, SendDateTime, CounterpartyBoxId ...) and
        the backend's own camelCase keys are both accepted; anything missing
        falls back to a sensible default.
        """
        status = first_present(raw, "status", "DocflowStatus", default=DocumentStatus.INCOMING.value)
        nested = raw.get("Document")
        entity_id = nested.get("EntityId") if isinstance(nested, dict) else None
        document_id = first_present(raw, "documentId") or entity_id or raw.get("MessageId")
        return cls(
            docflow_id=str(first_present(raw, "docflowId", "DocflowId", "id", default="")),
            document_id=str(document_id) if document_id else None,
            type=first_present(raw, "type", "DocumentType", default="UniversalTransferDocument"),
            status=status,
            direction=raw.get("direction") or ("in" if status == DocumentStatus.INCOMING.value else "out"),
            counterparty=first_present(raw, "counterparty", "CounterpartyBoxId", default="Контрагент"),
            date=first_present(raw, "date", "SendDateTime", "createdAt",
                               default=datetime.now(timezone.utc).isoformat()),
            total=safe_number(raw.get("total")),
            number=first_present(raw, "number", "DocumentNumber", default=""),
            cached=bool(raw.get("cached")),
        )

class DocumentLine(ApiModel):
    """One row of an incoming invoice / waybill. Immutable once parsed."""
    index: int = Field(..., description="Stable position within the document")
    name: str = "Позиция"
    quantity: float = 0.0
    unit_name: str = ""
    price: float = 0.0
    subtotal: float = 0.0
    vat_rate: str = ""
    barcode: str = ""
    article: str = ""
    item_code: str = ""
    match_status: str = "pending"
    raw: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @field_validator("name", "unit_name", "vat_rate", "barcode", "article", "item_code", "match_status", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return "" if v is None else str(v)

    @classmethod
    def normalize(cls, data: Dict[str, Any], index: Optional[int] = None) -> "DocumentLine":
        """
        Map a line payload onto the model.

        Payloads coming from the provider parser carry Diadoc names (Product,
        Quantity, Gtin ...) and become their own ``raw``; payloads coming back
        from the backend line store already carry an ``index`` and a ``raw``.
        """
        from_store = "index" in data and data.get("index") is not None
        raw = data.get("raw") if from_store else data
        return cls(
            index=int(data["index"]) if from_store else int(index or 0),
            name=first_present(data, "name", "Product", default="Позиция"),
            quantity=safe_number(first_present(data, "quantity", "Quantity", default=0)),
            unit_name=first_present(data, "unitName", "UnitName", default=""),
            price=safe_number(first_present(data, "price", "Price", default=0)),
            subtotal=safe_number(first_present(data, "subtotal", "SubtotalWithVatExcluded", "Subtotal", default=0)),
            vat_rate=str(first_present(data, "vatRate", "TaxRate", default="")),
            barcode=str(first_present(data, "barcode", "Gtin", "ItemVendorCode", default="")),
            article=str(first_present(data, "article", "ItemVendorCode", default="")),
            item_code=str(first_present(data, "itemCode", "ItemCode", default="")),
            match_status=data.get("matchStatus") or "pending",
            raw=dict(raw) if isinstance(raw, dict) else {},
        )

    @property
    def batch(self) -> Optional[str]:
        return self.raw.get("batch") or self.raw.get("BatchNumber") or None

    @property
    def expiry(self) -> Optional[str]:
        return self.raw.get("expiry") or self.raw.get("ExpiryDate") or None

    @property
    def total(self) -> float:
        return self.quantity * self.price

# Shown when the feed cannot be loaded; labelled as demo data in the banner
SAMPLE_DOCUMENTS: List[Dict[str, Any]] = [
    {
        "docflowId": "sample-demo-001",
        "documentId": "msg-001",
        "type": "UniversalTransferDocument",
        "status": "incoming",
        "counterparty": "ООО «Ромашка Снаб»",
        "date": "2025-02-14T09:25:00Z",
        "total": 12890.45,
        "number": "УПД №154 от 14.02.2025",
    }
]

# Placeholder lines used when a document cannot be parsed
SAMPLE_LINES: List[Dict[str, Any]] = [
    {
        "name": "Сыр Моцарелла 45%",
        "quantity": 10,
        "unitName": "кг",
        "price": 820,
        "subtotal": 8200,
        "vatRate": "20%",
        "barcode": "4601234000017",
        "article": "MOZ45",
        "itemCode": "A001",
    }
]

def sample_documents() -> List[IncomingDocument]:
    return [IncomingDocument.normalize(dict(doc)) for doc in SAMPLE_DOCUMENTS]

def sample_lines() -> List[DocumentLine]:
    return [DocumentLine.normalize(dict(line), index) for index, line in enumerate(SAMPLE_LINES)]
