"""
View model for the console. `render_console` is a pure function of the
state: calling it twice without an intervening command gives equal views.
"""
from datetime import datetime
from typing import List, Optional, Union

from edo.agents.matching import build_candidates
from edo.models.audit import HistoryEntry, Notice
from edo.models.base import ApiModel
from edo.models.document import DocumentStatus, IncomingDocument
from edo.models.matching import LineMatch
from edo.workflow import lifecycle
from edo.workflow.lifecycle import LifecycleAction
from edo.workflow.state import ConsoleState, DetailTab, DocumentSession

STATUS_LABELS = {
    "incoming": "входящий",
    "new": "входящий",
    "awaiting-signature": "ожидает подписи",
    "pending": "ожидает подписи",
    "signed": "подписан",
    "completed": "подписан",
    "rejected": "отклонён",
    "sent": "отправлен",
    DocumentStatus.LINES_PENDING.value: "ожидает сопоставления",
    DocumentStatus.LINES_MATCHED.value: "строки сопоставлены",
    DocumentStatus.RECEIPT_CREATED.value: "приход создан",
}


def status_label(status: Optional[str]) -> str:
    value = (status or "").lower()
    return STATUS_LABELS.get(value, status or "неизвестно")


def format_currency(value: float) -> str:
    """ru-RU money format: 12 890,45 with a no-break space as group separator."""
    return f"{value:,.2f}".replace(",", "\u00a0").replace(".", ",")


def format_date(value: Union[str, datetime, None]) -> str:
    if not value:
        return ""
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return parsed.strftime("%d.%m.%Y %H:%M")


def score_percent(score: Optional[float]) -> int:
    return round((score or 0) * 10)

# View models

class ConfigBadge(ApiModel):
    configured: bool
    label: str

class DocumentRow(ApiModel):
    docflow_id: str
    date: str
    counterparty: str
    number: str
    type: str
    total: str
    status: str
    status_label: str
    cached: bool = False
    selected: bool = False

class CandidateOption(ApiModel):
    product_id: str
    label: str
    selected: bool = False

class LineRow(ApiModel):
    index: int
    name: str
    quantity: float
    unit_name: str
    price: str
    subtotal: str
    vat_rate: str
    barcode: str
    article: str
    match: Optional[LineMatch] = None
    match_label: str = ""
    options: List[CandidateOption] = []

class ReceiptItemRow(ApiModel):
    line_index: int
    name: str
    product_name: str
    quantity: float
    price: str
    total: str
    ready: bool

class ReceiptView(ApiModel):
    ready: bool
    unmatched: int
    total: str
    items: List[ReceiptItemRow] = []
    receipt_id: Optional[str] = None
    receipt_status: Optional[str] = None

class SignatureView(ApiModel):
    status: str
    status_label: str
    can_create_receipt: bool
    can_sign: bool
    can_send: bool
    can_reject: bool

class DocumentDetail(ApiModel):
    docflow_id: str
    number: str
    counterparty: str
    status: str
    status_label: str
    tab: DetailTab
    placeholder_lines: bool = False
    has_xml: bool = False
    message: Optional[str] = None
    lines: List[LineRow] = []
    receipt: Optional[ReceiptView] = None
    signature: Optional[SignatureView] = None
    history: List[HistoryEntry] = []

class ActivityRow(ApiModel):
    timestamp: str
    message: str
    current_document: bool = False

class ConsoleView(ApiModel):
    title: str = "Диадок"
    config: ConfigBadge
    document_count: int
    log_count: int
    banner: Optional[str] = None
    loading_documents: bool = False
    loading_lines: bool = False
    documents: List[DocumentRow] = []
    detail: Optional[DocumentDetail] = None
    activity: List[ActivityRow] = []
    notices: List[Notice] = []

# Rendering

def render_console(state: ConsoleState) -> ConsoleView:
    configured = bool((state.server_config or {}).get("diadocConfigured"))
    selected = state.find_document(state.selected_document_id)
    return ConsoleView(
        config=ConfigBadge(
            configured=configured,
            label="Диадок: подключён" if configured else "Диадок: требуется токен",
        ),
        document_count=len(state.documents),
        log_count=len(state.activity_log),
        banner=state.error,
        loading_documents=state.loading_documents,
        loading_lines=state.loading_lines,
        documents=[_document_row(state, doc, selected) for doc in state.documents],
        detail=_render_detail(state, selected),
        activity=[
            ActivityRow(
                timestamp=format_date(entry.timestamp),
                message=entry.message,
                current_document=selected is not None and entry.doc_id == selected.docflow_id,
            )
            for entry in state.activity_log
        ],
        notices=list(state.notices),
    )


def _document_row(state: ConsoleState, doc: IncomingDocument, selected: Optional[IncomingDocument]) -> DocumentRow:
    session = state.session(doc.docflow_id)
    status = session.status.value if session else doc.status
    return DocumentRow(
        docflow_id=doc.docflow_id,
        date=format_date(doc.date),
        counterparty=doc.counterparty or "Контрагент",
        number=doc.number,
        type=doc.type,
        total=format_currency(doc.total or 0),
        status=status,
        status_label=status_label(status),
        cached=doc.cached,
        selected=selected is not None and selected.docflow_id == doc.docflow_id,
    )


def _render_detail(state: ConsoleState, doc: Optional[IncomingDocument]) -> Optional[DocumentDetail]:
    if doc is None:
        return None
    session = state.session(doc.docflow_id)
    status = session.status.value if session else doc.status
    detail = DocumentDetail(
        docflow_id=doc.docflow_id,
        number=doc.number,
        counterparty=doc.counterparty,
        status=status,
        status_label=status_label(status),
        tab=state.detail_tab,
    )
    if session is None or not session.lines:
        detail.message = "Титул ещё не загружен. Нажмите «Получить титул»."
        return detail

    detail.placeholder_lines = session.placeholder_lines
    detail.has_xml = bool(session.parsed_xml)
    detail.history = list(session.history)
    detail.signature = _render_signature(session)
    if state.detail_tab == DetailTab.RECEIPT:
        detail.receipt = _render_receipt(session)
    elif state.detail_tab in (DetailTab.LINES, DetailTab.SIGNATURE):
        detail.lines = [] if state.loading_lines else _render_lines(state, session)
        detail.receipt = _render_receipt(session)
    return detail


def _render_lines(state: ConsoleState, session: DocumentSession) -> List[LineRow]:
    rows = []
    for line in session.lines:
        match = session.matches.get(line.index)
        candidates = session.candidates.get(line.index)
        if candidates is None:
            candidates = build_candidates(line, state.inventory)
        options = [
            CandidateOption(
                product_id=candidate.product_id,
                label=f"{candidate.product.name} · {candidate.source} · {score_percent(candidate.score)}%",
                selected=match is not None and match.product_id == candidate.product_id,
            )
            for candidate in candidates
        ]
        match_label = ""
        if match is not None:
            match_label = f"{match.name} ({match.source or ''} · {score_percent(match.score)}%)"
        rows.append(LineRow(
            index=line.index,
            name=line.name,
            quantity=line.quantity,
            unit_name=line.unit_name,
            price=format_currency(line.price),
            subtotal=format_currency(line.subtotal),
            vat_rate=line.vat_rate,
            barcode=line.barcode,
            article=line.article,
            match=match,
            match_label=match_label,
            options=options,
        ))
    return rows


def _render_receipt(session: DocumentSession) -> ReceiptView:
    draft = session.draft()
    return ReceiptView(
        ready=draft.ready,
        unmatched=draft.unmatched,
        total=format_currency(draft.total),
        items=[
            ReceiptItemRow(
                line_index=item.line.index,
                name=item.line.name,
                product_name=item.match.name if item.match else "",
                quantity=item.line.quantity,
                price=format_currency(item.line.price),
                total=format_currency(item.total),
                ready=item.ready,
            )
            for item in draft.items
        ],
        receipt_id=session.receipt_id,
        receipt_status=session.receipt_status,
    )


def _render_signature(session: DocumentSession) -> SignatureView:
    allowed = lifecycle.allowed_actions(session)
    return SignatureView(
        status=session.status.value,
        status_label=status_label(session.status.value),
        can_create_receipt=LifecycleAction.CREATE_RECEIPT in allowed,
        can_sign=LifecycleAction.SIGN in allowed,
        can_send=LifecycleAction.SEND in allowed,
        can_reject=LifecycleAction.REJECT in allowed,
    )
