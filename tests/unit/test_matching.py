import pytest
from edo.agents.matching import (
    MatchingAgent,
    build_candidates,
    score_product,
    tokenize,
    word_score,
)
from edo.models.document import DocumentLine
from edo.models.matching import LineMatch
from edo.models.product import InventoryProduct

def test_tokenize_splits_on_punctuation_and_lowercases():
    assert tokenize("Сыр Моцарелла 45%") == ["сыр", "моцарелла", "45"]
    assert tokenize("Коробка-пиццы_33см") == ["коробка", "пиццы", "33см"]
    assert tokenize(None) == []

def test_word_score_counts_repeats_and_ignores_substrings():
    assert word_score(["сыр", "сыр"], ["сыр"]) == 2
    assert word_score(["моцареллы"], ["моцарелла"]) == 0

def test_mozzarella_scores_on_barcode(mozzarella_line, catalog):
    product = next(p for p in catalog if p.id == "prd-101")
    score, source = score_product(mozzarella_line, product)
    # barcode 8 + article 6 + three name tokens + VAT
    assert score == 18
    assert source == "barcode"

def test_candidates_ranked_with_stable_ties(mozzarella_line, catalog):
    candidates = build_candidates(mozzarella_line, catalog)
    assert [c.product_id for c in candidates] == ["prd-101", "prd-102", "prd-103"]
    assert [c.score for c in candidates] == [18, 1, 1]
    assert [c.source for c in candidates] == ["barcode", "name", "name"]

def test_candidates_are_deterministic(mozzarella_line, catalog):
    assert build_candidates(mozzarella_line, catalog) == build_candidates(mozzarella_line, catalog)

def test_empty_catalog_gives_no_candidates(mozzarella_line):
    assert build_candidates(mozzarella_line, []) == []

def test_line_without_signals_gives_no_candidates(catalog):
    line = DocumentLine(index=0, name="---")
    assert build_candidates(line, catalog) == []

def test_zero_scores_dropped_and_limit_applied():
    catalog = [InventoryProduct(id=f"p{i}", name=f"Товар {i}", vat_rate="20%") for i in range(7)]
    catalog.append(InventoryProduct(id="other", name="Прочее", vat_rate="10%"))
    line = DocumentLine(index=0, name="Позиция", vat_rate="20%")

    candidates = build_candidates(line, catalog)

    assert [c.product_id for c in candidates] == ["p0", "p1", "p2", "p3", "p4"]
    assert build_candidates(line, catalog, limit=2)[-1].product_id == "p1"

def test_article_label_wins_over_name_tokens():
    product = InventoryProduct(id="p1", name="Соус томатный для пиццы", article="sauce-1")
    line = DocumentLine(index=0, name="Соус томатный для пиццы", article="SAUCE-1")
    score, source = score_product(line, product)
    assert score == 6 + 4
    assert source == "article"

def test_item_code_checked_against_article(catalog):
    product = next(p for p in catalog if p.id == "prd-101")
    line = DocumentLine(index=0, name="Позиция", item_code="moz45")
    assert score_product(line, product) == (4, "name")

def test_barcode_outranks_partial_name_match():
    by_barcode = InventoryProduct(id="bc", name="Артикул поставщика", barcode="4600000000001")
    by_name = InventoryProduct(id="nm", name="Молоко пастеризованное 3,2% 1 л")
    line = DocumentLine(index=0, name="Молоко пастеризованное 3,2% 1 л", barcode="4600000000001")

    candidates = build_candidates(line, [by_name, by_barcode])

    assert candidates[0].product_id == "bc"
    assert candidates[0].source == "barcode"

def test_empty_codes_never_match():
    product = InventoryProduct(id="p1", name="Лук", barcode="", article="")
    line = DocumentLine(index=0, name="Чеснок", barcode="", article="", vat_rate="")
    assert score_product(line, product) == (0, "name")

@pytest.fixture
def lines():
    return [
        DocumentLine(index=0, name="Сыр Моцарелла 45%", barcode="4601234000017", vat_rate="20%"),
        DocumentLine(index=1, name="Коробка", article="BOX-33"),
        DocumentLine(index=2, name="Соус"),
    ]

def test_auto_match_accepts_above_threshold(lines, catalog):
    result = MatchingAgent().auto_match(lines, {}, catalog)

    assert result.matched == 2
    assert result.matches[0].product_id == "prd-101"
    assert result.matches[0].manual is False
    assert result.matches[1].product_id == "prd-102"
    assert result.matches[1].source == "article"
    # Соус shares one token with prd-100: a candidate, but below the threshold
    assert result.matches.get(2) is None
    assert result.candidates[2][0].product_id == "prd-100"

def test_auto_match_never_overwrites_existing_match(lines, catalog):
    manual = LineMatch(product_id="prd-103", name="Пицца Маргарита", manual=True)
    result = MatchingAgent().auto_match(lines, {0: manual}, catalog)

    assert result.matches[0] == manual
    assert result.matched == 1

def test_auto_match_threshold_is_tunable(lines, catalog):
    result = MatchingAgent(threshold=1).auto_match(lines, {}, catalog)
    assert result.matches[2].product_id == "prd-100"
    assert result.matched == 3
