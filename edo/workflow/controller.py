import logging
import uuid
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from edo.agents.matching import MatchingAgent, build_candidates
from edo.config import settings
from edo.exceptions import BackendError, BackendNotConfigured, EdoError, MissingReason, ReceiptNotReady
from edo.models.audit import ActivityEntry, Notice, NoticeLevel
from edo.models.base import ApiModel
from edo.models.document import IncomingDocument, DocumentLine, sample_documents, sample_lines
from edo.models.matching import LineMatch, MatchSource
from edo.models.product import InventoryProduct, ProductDraft, ProductType, find_product
from edo.models.receipt import ReceiptRequest
from edo.tools.edo_client import EdoClient
from edo.workflow import lifecycle
from edo.workflow.lifecycle import LifecycleAction
from edo.workflow.render import ConsoleView, render_console
from edo.workflow.state import ConsoleState, DetailTab, DocumentSession

logger = logging.getLogger(__name__)

class Intent(str, Enum):
    SYNC_DOCUMENTS = "sync-documents"
    RETRY_DOCUMENTS = "retry-documents"
    SELECT_DOCUMENT = "select-document"
    PARSE_DOCUMENT = "parse-document"
    REFRESH_DOCUMENT = "refresh-document"
    AUTO_MATCH = "auto-match"
    SET_MATCH = "set-match"
    CREATE_PRODUCT = "create-product"
    CREATE_RECEIPT = "create-receipt"
    SIGN_DOCUMENT = "sign-document"
    SEND_DOCUMENT = "send-document"
    REJECT_DOCUMENT = "reject-document"
    SYNC_STATUS = "sync-status"
    VIEW_XML = "view-xml"
    SWITCH_TAB = "switch-tab"

class Command(ApiModel):
    """A user intent plus whatever the user typed or picked for it."""
    intent: Intent
    doc_id: Optional[str] = None
    line_index: Optional[int] = None

    # set-match: explicit product, or a 1-based pick from the candidate list
    product_id: Optional[str] = None
    candidate_number: Optional[int] = None
    source: Optional[str] = None
    score: Optional[float] = None
    manual: Optional[bool] = None
    comment: Optional[str] = None

    # create-product
    name: Optional[str] = None
    product_type: Optional[str] = None

    # reject-document
    reason: Optional[str] = None

    # switch-tab
    tab: Optional[DetailTab] = None

class CommandResult(ApiModel):
    intent: Intent
    ok: bool = True
    notices: List[Notice] = []
    xml: Optional[str] = None

# Messages surfaced to the operator
SAMPLE_FEED_BANNER = "Получены данные примера. Проверьте подключение к Диадоку."
FEED_FAILED_BANNER = "Не удалось загрузить документы из Диадока. Показаны данные примера."
PARSE_FAILED_BANNER = "Не удалось распарсить документ — отображён демо-набор."
PARSE_EMPTY_BANNER = "Документ не содержит строк — отображён демо-набор."

# Raised by line-store payloads that do not fit DocumentLine / LineMatch
LINE_PAYLOAD_ERRORS = (ValidationError, KeyError, ValueError, TypeError)

SIGNATURE_TEXTS = {
    LifecycleAction.SIGN: {
        "done": "Документ подписан КЭП.",
        "log": "Документ подписан",
        "demo": "Документ подписан (демо-режим, API не настроен).",
        "demo_alert": "API подписи не настроен. Документ помечен как подписанный в демо-режиме.",
        "failed": "Ошибка подписи",
        "failed_alert": "Не удалось подписать документ. Проверьте журнал.",
    },
    LifecycleAction.SEND: {
        "done": "Титул покупателя отправлен контрагенту.",
        "log": "Титул покупателя отправлен",
        "demo": "Титул покупателя отправлен (демо-режим, API не настроен).",
        "demo_alert": "API отправки не настроен. Документ помечен как отправленный в демо-режиме.",
        "failed": "Ошибка отправки",
        "failed_alert": "Не удалось отправить документ.",
    },
    LifecycleAction.REJECT: {
        "done": "Отказано: {reason}",
        "log": "Отправлен отказ: {reason}",
        "demo": "Отказано: {reason} (демо-режим, API не настроен).",
        "demo_alert": "API отказа не настроен. Документ помечен как отклонённый в демо-режиме.",
        "failed": "Ошибка отказа",
        "failed_alert": "Не удалось отправить отказ.",
    },
}

class EdoConsole:
    """
    Controller for the EDO reconciliation console.

    Owns one ConsoleState, talks to the backend through EdoClient and turns
    every Command into state changes plus user-visible notices. Handlers may
    raise EdoError; `dispatch` converts any failure into an error notice so
    nothing escapes to the caller.
    """

    def __init__(
        self,
        client: EdoClient,
        state: Optional[ConsoleState] = None,
        matcher: Optional[MatchingAgent] = None,
    ):
        self.client = client
        self.state = state or ConsoleState()
        self.matcher = matcher or MatchingAgent()
        self.handlers: Dict[Intent, Callable[[Command], Awaitable[Optional[str]]]] = {
            Intent.SYNC_DOCUMENTS: self.sync_documents,
            Intent.RETRY_DOCUMENTS: self.sync_documents,
            Intent.SELECT_DOCUMENT: self.select_document,
            Intent.PARSE_DOCUMENT: self.parse_document,
            Intent.REFRESH_DOCUMENT: self.parse_document,
            Intent.AUTO_MATCH: self.auto_match,
            Intent.SET_MATCH: self.set_match,
            Intent.CREATE_PRODUCT: self.create_product,
            Intent.CREATE_RECEIPT: self.create_receipt,
            Intent.SIGN_DOCUMENT: self.sign_document,
            Intent.SEND_DOCUMENT: self.send_document,
            Intent.REJECT_DOCUMENT: self.reject_document,
            Intent.SYNC_STATUS: self.sync_status,
            Intent.VIEW_XML: self.view_xml,
            Intent.SWITCH_TAB: self.switch_tab,
        }

    # Entry points

    async def start(self):
        """Initial load: server config, catalog, then the document feed."""
        await self.fetch_server_config()
        await self.fetch_inventory()
        await self.sync_documents()

    async def dispatch(self, command: Command) -> CommandResult:
        mark = len(self.state.notices)
        xml = None
        ok = True
        handler = self.handlers[command.intent]
        try:
            xml = await handler(command)
        except EdoError as e:
            ok = False
            logger.warning(f"[EDO] {command.intent.value} failed: {e}")
            self.notify(NoticeLevel.ERROR, str(e), command.doc_id)
        except Exception:
            ok = False
            logger.exception(f"[EDO] {command.intent.value} crashed")
            self.notify(NoticeLevel.ERROR, "Операция не выполнена", command.doc_id)
        return CommandResult(intent=command.intent, ok=ok, notices=self.state.notices[mark:], xml=xml)

    def render(self) -> ConsoleView:
        return render_console(self.state)

    # Journal & notices

    def log(self, message: str, doc_id: Optional[str] = None):
        entry = ActivityEntry(doc_id=doc_id or self.state.selected_document_id, message=message)
        self.state.activity_log.insert(0, entry)
        logger.info(f"[EDO] {message} ({entry.doc_id})")

    def append_history(self, session: DocumentSession, text: str):
        session.add_history(text)

    def notify(self, level: NoticeLevel, message: str, doc_id: Optional[str] = None):
        self.state.notices.append(Notice(level=level, message=message, doc_id=doc_id))

    # Startup loads

    async def fetch_server_config(self):
        try:
            data = await self.client.get_config()
        except EdoError:
            # Offline mode: the console works without the provider connection
            self.state.server_config = {"diadocConfigured": False}
            return
        if data.get("ok"):
            self.state.server_config = data

    async def fetch_inventory(self):
        try:
            data = await self.client.list_products()
        except BackendNotConfigured:
            return
        except BackendError as e:
            logger.warning(f"[EDO] inventory load failed: {e}")
            return
        products = data.get("products")
        if not isinstance(products, list):
            return
        try:
            self.state.inventory = [InventoryProduct.model_validate(item) for item in products]
        except ValidationError as e:
            logger.warning(f"[EDO] inventory payload rejected, keeping seed catalog: {e}")

    # Documents

    async def sync_documents(self, command: Optional[Command] = None):
        await self.load_documents()
        state = self.state
        if not state.selected_document_id and state.documents:
            await self.select_document(Command(intent=Intent.SELECT_DOCUMENT, doc_id=state.documents[0].docflow_id))

    async def load_documents(self):
        state = self.state
        state.loading_documents = True
        state.error = None
        try:
            data = await self.client.list_documents()
            docs = data.get("docs")
            if isinstance(docs, list):
                documents = [IncomingDocument.normalize(doc) for doc in docs if isinstance(doc, dict)]
                if data.get("cached") and data.get("warning"):
                    state.error = data["warning"]
            else:
                documents = sample_documents()
                state.error = SAMPLE_FEED_BANNER
        except (EdoError, ValidationError) as e:
            logger.warning(f"[EDO] document feed fallback: {e}")
            documents = sample_documents()
            state.error = FEED_FAILED_BANNER
        finally:
            state.loading_documents = False

        state.documents = documents
        for document in documents:
            session = state.session(document.docflow_id)
            if session is not None:
                session.document = document

    async def select_document(self, command: Command):
        state = self.state
        doc = self._require_document(command.doc_id)
        already_selected = state.selected_document_id == doc.docflow_id
        state.selected_document_id = doc.docflow_id
        session = state.ensure_session(doc)
        if already_selected and session.lines:
            return
        if not session.lines:
            await self.refresh_lines(doc.docflow_id)

    async def refresh_lines(self, docflow_id: str) -> bool:
        """Pull lines (with matches and candidates) from the backend line store."""
        session = self.state.session(docflow_id)
        if session is None:
            return False
        try:
            data = await self.client.get_lines(docflow_id, with_candidates=True)
        except EdoError as e:
            logger.warning(f"[EDO] refreshLines fallback: {e}")
            return False
        lines = data.get("lines")
        if not isinstance(lines, list) or not lines:
            return False
        try:
            session.apply_lines([line for line in lines if isinstance(line, dict)])
        except LINE_PAYLOAD_ERRORS as e:
            logger.warning(f"[EDO] line store payload rejected: {e}")
            return False
        lifecycle.lines_loaded(session)
        return True

    async def parse_document(self, command: Command):
        session = self._require_session(command.doc_id)
        lifecycle.check_transition(session, LifecycleAction.PARSE)
        docflow_id = session.docflow_id
        self.state.loading_lines = True
        try:
            result = await self.client.parse_document(docflow_id)
            items = result.get("items")
            if isinstance(items, list) and items:
                lines = [
                    DocumentLine.normalize(item, index)
                    for index, item in enumerate(items)
                    if isinstance(item, dict)
                ]
                session.set_lines(lines)
                session.parsed_xml = str(result.get("xml") or "")
                self.append_history(session, "Получен титул продавца и распарсен через API")
                self.log("Титул продавца загружен и распарсен", docflow_id)
                if not await self.refresh_lines(docflow_id):
                    self._recompute_candidates(session)
                lifecycle.apply_transition(session, LifecycleAction.PARSE)
            else:
                self._use_placeholder_lines(session, PARSE_EMPTY_BANNER)
                self.append_history(session, "Использованы демонстрационные данные по строкам накладной")
                self.log("Использован демо-набор строк", docflow_id)
        except (EdoError, *LINE_PAYLOAD_ERRORS) as e:
            self._use_placeholder_lines(session, PARSE_FAILED_BANNER)
            self.append_history(session, f"Ошибка парсинга: {e}")
            self.log(f"Ошибка парсинга: {e}", docflow_id)
        finally:
            self.state.loading_lines = False

    def _use_placeholder_lines(self, session: DocumentSession, banner: str):
        session.set_lines(sample_lines(), placeholder=True)
        session.parsed_xml = ""
        self.state.error = banner
        self.notify(NoticeLevel.WARNING, banner, session.docflow_id)
        self.run_local_auto_match(session)
        lifecycle.apply_transition(session, LifecycleAction.PARSE)

    def _recompute_candidates(self, session: DocumentSession):
        for line in session.lines:
            session.candidates[line.index] = build_candidates(line, self.state.inventory, self.matcher.limit)

    # Matching

    async def auto_match(self, command: Command):
        session = self._require_session(command.doc_id)
        if not session.lines:
            raise EdoError("Сначала загрузите строки документа")
        try:
            response = await self.client.auto_match(session.docflow_id, settings.SERVER_AUTO_MATCH_THRESHOLD)
            lines = response.get("lines")
            if isinstance(lines, list) and lines:
                session.apply_lines([line for line in lines if isinstance(line, dict)])
        except (EdoError, *LINE_PAYLOAD_ERRORS) as e:
            logger.warning(f"[EDO] autoMatch fallback: {e}")
            self.run_local_auto_match(session)
            return
        matched = response.get("matched")
        if isinstance(matched, int):
            self.append_history(session, f"Автосопоставление: подобрано {matched} строк")

    def run_local_auto_match(self, session: DocumentSession) -> int:
        result = self.matcher.auto_match(session.lines, session.matches, self.state.inventory)
        session.candidates = result.candidates
        session.matches = result.matches
        self.append_history(session, "Автосопоставление выполнено локально (режим офлайн).")
        return result.matched

    async def set_match(self, command: Command):
        session = self._require_session(command.doc_id)
        line = self._require_line(session, command.line_index)
        match = self._resolve_match(session, line, command)
        await self.assign_match(session, line.index, match)

    def _resolve_match(self, session: DocumentSession, line: DocumentLine, command: Command) -> Optional[LineMatch]:
        candidates = session.candidates.get(line.index) or []
        if command.candidate_number is not None:
            if not candidates:
                raise EdoError(
                    "Кандидаты не найдены. Добавьте карточку вручную или настройте правило сопоставления."
                )
            if not 1 <= command.candidate_number <= len(candidates):
                raise EdoError("Неверный номер кандидата")

        manual = command.manual is not False
        if command.candidate_number is not None:
            match = LineMatch.from_candidate(candidates[command.candidate_number - 1], manual=manual)
        elif not command.product_id:
            return None
        else:
            match = self._match_for_product(candidates, command.product_id, manual)

        updates = {}
        if command.source:
            updates["source"] = command.source
        if command.score is not None:
            updates["score"] = command.score
        if command.comment:
            updates["comment"] = command.comment
        return match.model_copy(update=updates) if updates else match

    def _match_for_product(self, candidates, product_id: str, manual: bool) -> LineMatch:
        candidate = next((c for c in candidates if c.product_id == product_id), None)
        if candidate is not None:
            return LineMatch.from_candidate(candidate, manual=manual)
        product = find_product(self.state.inventory, product_id)
        return LineMatch(
            product_id=product_id,
            name=product.name if product else "",
            type=product.type if product else "",
            source=MatchSource.MANUAL.value,
            manual=manual,
        )

    async def assign_match(self, session: DocumentSession, line_index: int, match: Optional[LineMatch]):
        """Set (or clear, when match is None) the accepted match of one line."""
        docflow_id = session.docflow_id
        try:
            if match is not None:
                payload = await self.client.set_match(docflow_id, line_index, match)
            else:
                payload = await self.client.clear_match(docflow_id, line_index)
        except BackendNotConfigured:
            session.matches[line_index] = match
            self.notify(
                NoticeLevel.WARNING,
                "API сопоставления не настроен. Сопоставление сохранено локально (демо-режим).",
                docflow_id,
            )
        except BackendError:
            await self.refresh_lines(docflow_id)
            raise
        else:
            if not self._apply_line_payload(session, payload.get("line")):
                session.matches[line_index] = match

        if match is not None:
            self.log(f"Строка {line_index + 1} сопоставлена: {match.name or match.product_id}", docflow_id)
        else:
            self.log(f"Сопоставление строки {line_index + 1} снято", docflow_id)

    def _apply_line_payload(self, session: DocumentSession, line_payload) -> bool:
        if not isinstance(line_payload, dict) or line_payload.get("index") is None:
            return False
        try:
            session.apply_line_update(line_payload)
        except LINE_PAYLOAD_ERRORS as e:
            logger.warning(f"[EDO] line update payload rejected, keeping local match: {e}")
            return False
        return True

    async def create_product(self, command: Command) -> None:
        session = self._require_session(command.doc_id)
        line = self._require_line(session, command.line_index)
        name = (line.name if command.name is None else command.name).strip()
        if not name:
            self.notify(NoticeLevel.INFO, "Создание карточки отменено", session.docflow_id)
            return
        draft = ProductDraft(
            name=name,
            type=(command.product_type or "").strip() or ProductType.INGREDIENT.value,
            barcode=line.barcode,
            article=line.article,
            synonyms=[line.name],
            vat_rate=line.vat_rate,
        )
        try:
            response = await self.client.create_product(draft)
            product_payload = response.get("product")
            if not isinstance(product_payload, dict):
                raise BackendError("Не удалось создать карточку", path="/inventory/products")
            product = InventoryProduct.model_validate(product_payload)
        except BackendNotConfigured:
            product = draft.to_product(f"local-{uuid.uuid4().hex[:8]}")
            self.notify(
                NoticeLevel.WARNING,
                "API каталога не настроен. Карточка создана локально (демо-режим).",
                session.docflow_id,
            )

        self.state.inventory.append(product)
        self.log(f"Создана новая карточка {product.name}", session.docflow_id)
        await self.assign_match(session, line.index, LineMatch(
            product_id=product.id,
            name=product.name,
            type=product.type,
            source=MatchSource.MANUAL.value,
            score=1,
            manual=True,
        ))

    # Receipt & signatures

    async def create_receipt(self, command: Command):
        session = self._require_session(command.doc_id)
        draft = session.draft()
        if not session.lines or not draft.ready:
            raise ReceiptNotReady(draft.unmatched)
        lifecycle.check_transition(session, LifecycleAction.CREATE_RECEIPT)

        docflow_id = session.docflow_id
        request = ReceiptRequest.from_draft(docflow_id, settings.DEFAULT_WAREHOUSE_ID, draft)
        try:
            response = await self.client.create_receipt(request)
            receipt_id = response.get("receiptId")
            if not response.get("ok") or receipt_id in (None, ""):
                raise BackendError("Сервер вернул ошибку", path="/receipts")
        except EdoError as e:
            self.append_history(session, f"Не удалось создать приход: {e}")
            self.log(f"Ошибка создания прихода: {e}", docflow_id)
            raise EdoError("Не удалось создать приход. Проверьте журнал.") from e

        session.receipt_id = str(receipt_id)
        session.receipt_status = "draft"
        lifecycle.apply_transition(session, LifecycleAction.CREATE_RECEIPT)
        self.append_history(session, f"Создан приход #{receipt_id}")
        self.log(f"Создан приход #{receipt_id}", docflow_id)

    async def sign_document(self, command: Command):
        session = self._require_session(command.doc_id)
        await self._signature_step(session, LifecycleAction.SIGN, lambda: self.client.sign_document(session.docflow_id))

    async def send_document(self, command: Command):
        session = self._require_session(command.doc_id)
        await self._signature_step(session, LifecycleAction.SEND, lambda: self.client.send_document(session.docflow_id))

    async def reject_document(self, command: Command):
        reason = (command.reason or "").strip()
        if not reason:
            raise MissingReason()
        session = self._require_session(command.doc_id)
        await self._signature_step(
            session, LifecycleAction.REJECT,
            lambda: self.client.reject_document(session.docflow_id, reason), reason=reason,
        )

    async def _signature_step(
        self,
        session: DocumentSession,
        action: LifecycleAction,
        call: Callable[[], Awaitable[dict]],
        reason: str = "",
    ):
        """
        Run one signature call. A route that is not configured still advances
        the document (demo mode) with a warning; any other failure leaves the
        status alone.
        """
        texts = {key: value.format(reason=reason) for key, value in SIGNATURE_TEXTS[action].items()}
        docflow_id = session.docflow_id
        lifecycle.check_transition(session, action)
        try:
            await call()
        except BackendNotConfigured:
            lifecycle.apply_transition(session, action)
            self.append_history(session, texts["demo"])
            self.log(f"{texts['log']} (демо)", docflow_id)
            self.notify(NoticeLevel.WARNING, texts["demo_alert"], docflow_id)
            return
        except BackendError as e:
            self.append_history(session, f"{texts['failed']}: {e}")
            self.log(f"{texts['failed']}: {e}", docflow_id)
            raise EdoError(texts["failed_alert"]) from e
        lifecycle.apply_transition(session, action)
        self.append_history(session, texts["done"])
        self.log(texts["log"], docflow_id)

    async def sync_status(self, command: Command):
        docflow_id = command.doc_id or self.state.selected_document_id
        if not docflow_id:
            raise EdoError("Сначала выберите документ.")
        response = await self.client.sync_document(docflow_id)
        if response.get("warning"):
            self.notify(NoticeLevel.WARNING, response["warning"], docflow_id)
        await self.load_documents()
        session = self.state.session(docflow_id)
        if session is not None:
            if lifecycle.adopt_backend_status(session):
                self.append_history(session, f"Статус обновлён из Диадока: {session.status.value}")
            await self.refresh_lines(docflow_id)
        self.notify(NoticeLevel.INFO, "Статус документа обновлён", docflow_id)

    # View

    async def view_xml(self, command: Command) -> str:
        session = self._require_session(command.doc_id)
        if not session.parsed_xml:
            raise EdoError("XML ещё не загружен.")
        return session.parsed_xml

    async def switch_tab(self, command: Command):
        if command.tab is None:
            raise EdoError("Не указана вкладка")
        self.state.detail_tab = command.tab

    # Lookups

    def _require_document(self, docflow_id: Optional[str]) -> IncomingDocument:
        doc = self.state.find_document(docflow_id or self.state.selected_document_id)
        if doc is None:
            raise EdoError("Документ не найден")
        return doc

    def _require_session(self, docflow_id: Optional[str]) -> DocumentSession:
        return self.state.ensure_session(self._require_document(docflow_id))

    def _require_line(self, session: DocumentSession, line_index: Optional[int]) -> DocumentLine:
        line = session.line(line_index) if line_index is not None else None
        if line is None:
            raise EdoError("Строка документа не найдена")
        return line
