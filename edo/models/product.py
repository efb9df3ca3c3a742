from enum import Enum
from typing import List, Optional
from pydantic import Field, field_validator
from edo.models.base import ApiModel

class ProductType(str, Enum):
    INGREDIENT = "ingredient"
    PACKAGE = "package"
    PRODUCT = "product"

class InventoryProduct(ApiModel):
    """Catalog entry the matcher scores invoice lines against."""
    id: str = Field(..., description="Catalog product ID")
    type: str = Field(ProductType.INGREDIENT.value, description="ingredient / package / product")
    name: str
    barcode: str = ""
    article: str = ""
    vat_rate: str = ""
    synonyms: List[str] = Field(default_factory=list)

    @field_validator("barcode", "article", "vat_rate", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else str(v)

class ProductDraft(ApiModel):
    """Payload for minting a catalog entry from an unmatched invoice line."""
    name: str
    type: str = ProductType.INGREDIENT.value
    barcode: str = ""
    article: str = ""
    vat_rate: str = ""
    synonyms: List[str] = Field(default_factory=list)

    def to_product(self, product_id: str) -> InventoryProduct:
        return InventoryProduct(id=product_id, **self.model_dump())

# Used whenever the backend catalog cannot be loaded
SEED_CATALOG: List[InventoryProduct] = [
    InventoryProduct(
        id="prd-100", type=ProductType.INGREDIENT.value, name="Соус томатный базовый",
        barcode="4601234000024", article="SAUCE-TOM",
        synonyms=["соус томатный", "соус для пиццы"], vat_rate="10%",
    ),
    InventoryProduct(
        id="prd-101", type=ProductType.INGREDIENT.value, name="Сыр Моцарелла 45%",
        barcode="4601234000017", article="MOZ45",
        synonyms=["моцарелла", "сыр моцарелла"], vat_rate="20%",
    ),
    InventoryProduct(
        id="prd-102", type=ProductType.PACKAGE.value, name="Коробка пиццы 33 см",
        barcode="", article="BOX-33",
        synonyms=["коробка", "упаковка пиццы"], vat_rate="20%",
    ),
    InventoryProduct(
        id="prd-103", type=ProductType.PRODUCT.value, name="Пицца Маргарита",
        barcode="4607001234567", article="PIZZA-MARG",
        synonyms=["пицца маргарита"], vat_rate="20%",
    ),
]

def seed_catalog() -> List[InventoryProduct]:
    """Fresh copy of the seed catalog so sessions never share product objects."""
    return [product.model_copy(deep=True) for product in SEED_CATALOG]

def find_product(catalog: List[InventoryProduct], product_id: Optional[str]) -> Optional[InventoryProduct]:
    if not product_id:
        return None
    return next((p for p in catalog if p.id == product_id), None)
