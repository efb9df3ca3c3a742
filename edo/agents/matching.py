import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import Field

from edo.config import settings
from edo.models.base import ApiModel
from edo.models.document import DocumentLine
from edo.models.matching import LineMatch, MatchCandidate, MatchSource
from edo.models.product import InventoryProduct

logger = logging.getLogger(__name__)

# Signal weights. Empirical values, tuned together with AUTO_MATCH_THRESHOLD.
BARCODE_WEIGHT = 8
ARTICLE_WEIGHT = 6
ITEM_CODE_WEIGHT = 4
VAT_WEIGHT = 1

_SEPARATORS = re.compile(r"[\W_]+")


def tokenize(text: Optional[str]) -> List[str]:
    """Lower-case word tokens; anything that is not a letter or digit separates words."""
    return [token for token in _SEPARATORS.split((text or "").lower()) if token]


def word_score(line_tokens: Sequence[str], product_tokens: Sequence[str]) -> int:
    """Count line tokens (with repeats) that appear verbatim among the product tokens."""
    vocabulary = set(product_tokens)
    return sum(1 for token in line_tokens if token in vocabulary)


def _same_code(left: str, right: str) -> bool:
    return bool(left) and bool(right) and left.lower() == right.lower()


def score_product(line: DocumentLine, product: InventoryProduct) -> Tuple[int, str]:
    """
    Score one catalog product against one invoice line.

    Returns the integer score and the label of the strongest signal that
    contributed (barcode, then article, otherwise name).
    """
    score = 0
    source = MatchSource.NAME.value

    if line.barcode and product.barcode and line.barcode == product.barcode:
        score += BARCODE_WEIGHT
        source = MatchSource.BARCODE.value

    if _same_code(line.article, product.article):
        score += ARTICLE_WEIGHT
        if source == MatchSource.NAME.value:
            source = MatchSource.ARTICLE.value

    # Supplier item code is a second code channel, checked against the article
    if _same_code(line.item_code, product.article):
        score += ITEM_CODE_WEIGHT

    product_tokens = tokenize(product.name) + tokenize(" ".join(product.synonyms))
    score += word_score(tokenize(line.name), product_tokens)

    if line.vat_rate and product.vat_rate and line.vat_rate == product.vat_rate:
        score += VAT_WEIGHT

    return score, source


def build_candidates(
    line: DocumentLine,
    catalog: Sequence[InventoryProduct],
    limit: Optional[int] = None,
) -> List[MatchCandidate]:
    """
    Ranked shortlist of catalog products for a line.

    Zero-score products are dropped; ties keep catalog order (sorted() is stable).
    """
    limit = settings.MAX_CANDIDATES if limit is None else limit
    scored = []
    for product in catalog:
        score, source = score_product(line, product)
        if score > 0:
            scored.append(MatchCandidate(product=product, score=score, source=source))
    scored = sorted(scored, key=lambda candidate: candidate.score, reverse=True)
    return scored[:limit]


class AutoMatchResult(ApiModel):
    candidates: Dict[int, List[MatchCandidate]] = Field(default_factory=dict)
    matches: Dict[int, Optional[LineMatch]] = Field(default_factory=dict)
    matched: int = 0


class MatchingAgent:
    """Bulk reconciliation of a document's lines against the catalog."""

    def __init__(self, threshold: Optional[int] = None, limit: Optional[int] = None):
        self.threshold = settings.AUTO_MATCH_THRESHOLD if threshold is None else threshold
        self.limit = settings.MAX_CANDIDATES if limit is None else limit

    def auto_match(
        self,
        lines: Sequence[DocumentLine],
        matches: Dict[int, Optional[LineMatch]],
        catalog: Sequence[InventoryProduct],
    ) -> AutoMatchResult:
        """
        Recompute candidates for every line and accept the top one where it
        clears the threshold. Lines that already carry a match keep it.
        """
        result = AutoMatchResult(matches=dict(matches))
        for line in lines:
            candidates = build_candidates(line, catalog, self.limit)
            result.candidates[line.index] = candidates
            if result.matches.get(line.index) is not None:
                continue
            if candidates and candidates[0].score >= self.threshold:
                result.matches[line.index] = LineMatch.from_candidate(candidates[0])
                result.matched += 1
        logger.info(f"Auto-match accepted {result.matched} of {len(lines)} lines")
        return result
