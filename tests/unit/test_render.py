from datetime import datetime

from edo.models.audit import ActivityEntry
from edo.models.document import DocumentLine, IncomingDocument, sample_documents
from edo.models.matching import LineMatch
from edo.workflow import lifecycle
from edo.workflow.lifecycle import LifecycleAction
from edo.workflow.render import format_currency, format_date, render_console, status_label
from edo.workflow.state import ConsoleState, DetailTab

NBSP = "\u00a0"

def test_format_currency_ru():
    assert format_currency(12890.45) == f"12{NBSP}890,45"
    assert format_currency(0) == "0,00"
    assert format_currency(1234567.5) == f"1{NBSP}234{NBSP}567,50"

def test_format_date_ru():
    assert format_date("2025-02-14T09:25:00Z") == "14.02.2025 09:25"
    assert format_date(datetime(2025, 3, 1, 7, 5)) == "01.03.2025 07:05"
    assert format_date("вчера") == "вчера"
    assert format_date("") == ""

def test_status_labels():
    assert status_label("incoming") == "входящий"
    assert status_label("new") == "входящий"
    assert status_label("awaiting-signature") == "ожидает подписи"
    assert status_label("completed") == "подписан"
    assert status_label("sent") == "отправлен"
    assert status_label("rejected") == "отклонён"
    assert status_label("lines-matched") == "строки сопоставлены"
    assert status_label("archived") == "archived"

def make_state() -> ConsoleState:
    state = ConsoleState(documents=sample_documents(), server_config={"ok": True, "diadocConfigured": True})
    state.selected_document_id = "sample-demo-001"
    return state

def test_empty_state_renders():
    view = render_console(ConsoleState())
    assert view.document_count == 0
    assert view.detail is None
    assert view.config.configured is False

def test_document_rows():
    view = render_console(make_state())
    row = view.documents[0]
    assert row.docflow_id == "sample-demo-001"
    assert row.date == "14.02.2025 09:25"
    assert row.total == f"12{NBSP}890,45"
    assert row.status_label == "входящий"
    assert row.selected is True
    assert view.config.label == "Диадок: подключён"

def test_detail_without_lines_asks_for_parse():
    state = make_state()
    state.ensure_session(state.documents[0])
    detail = render_console(state).detail
    assert detail.lines == []
    assert detail.message

def test_lines_render_local_candidates_as_percent():
    state = make_state()
    session = state.ensure_session(state.documents[0])
    session.set_lines([DocumentLine(index=0, name="Сыр Моцарелла 45%", barcode="4601234000017", vat_rate="20%")])
    lifecycle.apply_transition(session, LifecycleAction.PARSE)

    row = render_console(state).detail.lines[0]

    # barcode 8 + three tokens + VAT = 12 -> 120%
    assert row.options[0].label == "Сыр Моцарелла 45% · barcode · 120%"
    assert row.options[0].selected is False
    assert row.match is None

def test_receipt_tab_and_signature_actions():
    state = make_state()
    session = state.ensure_session(state.documents[0])
    session.set_lines([DocumentLine(index=0, name="Лук", quantity=3, price=40)])
    lifecycle.apply_transition(session, LifecycleAction.PARSE)
    session.matches[0] = LineMatch(product_id="prd-1", name="Лук репчатый", source="manual", score=1)
    state.detail_tab = DetailTab.RECEIPT

    detail = render_console(state).detail

    assert detail.status == "lines-matched"
    assert detail.receipt.ready is True
    assert detail.receipt.total == "120,00"
    assert detail.receipt.items[0].product_name == "Лук репчатый"
    assert detail.signature.can_create_receipt is True
    assert detail.signature.can_send is False

def test_activity_flags_current_document():
    state = make_state()
    state.activity_log = [
        ActivityEntry(doc_id="sample-demo-001", message="Титул загружен"),
        ActivityEntry(doc_id="other", message="Другой документ"),
    ]
    activity = render_console(state).activity
    assert [row.current_document for row in activity] == [True, False]

def test_render_is_idempotent():
    state = make_state()
    state.documents.append(IncomingDocument(docflow_id="DF-2", status="signed"))
    state.ensure_session(state.documents[0])
    assert render_console(state) == render_console(state)
