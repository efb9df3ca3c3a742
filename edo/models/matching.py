from enum import Enum
from typing import Any, Dict, Optional
from pydantic import Field
from edo.models.base import ApiModel, safe_number
from edo.models.product import InventoryProduct

class MatchSource(str, Enum):
    BARCODE = "barcode"
    ARTICLE = "article"
    NAME = "name"
    MANUAL = "manual"

class MatchCandidate(ApiModel):
    """A scored (line, product) pairing. Recomputed on demand, never stored."""
    product: InventoryProduct
    score: float = Field(0, ge=0)
    source: str = MatchSource.NAME.value

    @property
    def product_id(self) -> str:
        return self.product.id

    @classmethod
    def from_payload(cls, data: Optional[Dict[str, Any]]) -> Optional["MatchCandidate"]:
        """Accepts both {product: {...}, score, source} and the flat {id, name, ...} shape."""
        if not data:
            return None
        product = data.get("product")
        if not isinstance(product, dict):
            product = {key: value for key, value in data.items() if key not in ("score", "source")}
        return cls(
            product=InventoryProduct.model_validate(product),
            score=max(safe_number(data.get("score")), 0.0),
            source=data.get("source") or MatchSource.NAME.value,
        )

class LineMatch(ApiModel):
    """The accepted association between a document line and a catalog product."""
    product_id: str
    name: str = ""
    type: str = ""
    source: str = MatchSource.MANUAL.value
    score: Optional[float] = None
    manual: bool = False
    comment: Optional[str] = None

    @classmethod
    def from_candidate(cls, candidate: MatchCandidate, manual: bool = False) -> "LineMatch":
        return cls(
            product_id=candidate.product.id,
            name=candidate.product.name,
            type=candidate.product.type,
            source=candidate.source,
            score=candidate.score,
            manual=manual,
        )
