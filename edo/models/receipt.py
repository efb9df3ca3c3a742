from typing import Dict, List, Optional
from pydantic import Field
from edo.models.base import ApiModel
from edo.models.document import DocumentLine
from edo.models.matching import LineMatch

class ReceiptDraftItem(ApiModel):
    line: DocumentLine
    match: Optional[LineMatch] = None
    ready: bool = False
    total: float = 0.0

class ReceiptDraft(ApiModel):
    """
    Read-only view over a document's lines and their accepted matches.
    A draft is ready only when every line has a match.
    """
    items: List[ReceiptDraftItem] = Field(default_factory=list)

    @property
    def ready(self) -> bool:
        return all(item.ready for item in self.items)

    @property
    def unmatched(self) -> int:
        return sum(1 for item in self.items if not item.ready)

    @property
    def total(self) -> float:
        return sum(item.total for item in self.items)

    @classmethod
    def build(cls, lines: List[DocumentLine], matches: Dict[int, Optional[LineMatch]]) -> "ReceiptDraft":
        items = []
        for line in lines:
            match = matches.get(line.index)
            items.append(ReceiptDraftItem(line=line, match=match, ready=match is not None, total=line.total))
        return cls(items=items)

class ReceiptLine(ApiModel):
    edo_line_id: int
    product_id: str
    qty: float
    price: float
    vat_rate: Optional[str] = None
    batch: Optional[str] = None
    expiry: Optional[str] = None

class ReceiptRequest(ApiModel):
    """Payload for the draft goods receipt endpoint."""
    edo_document_id: str
    warehouse_id: str
    lines: List[ReceiptLine] = Field(default_factory=list)

    @classmethod
    def from_draft(cls, docflow_id: str, warehouse_id: str, draft: ReceiptDraft) -> "ReceiptRequest":
        return cls(
            edo_document_id=docflow_id,
            warehouse_id=warehouse_id,
            lines=[
                ReceiptLine(
                    edo_line_id=item.line.index,
                    product_id=item.match.product_id,
                    qty=item.line.quantity,
                    price=item.line.price,
                    vat_rate=item.line.vat_rate or None,
                    batch=item.line.batch,
                    expiry=item.line.expiry,
                )
                for item in draft.items
            ],
        )
