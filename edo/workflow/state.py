from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from pydantic import Field

from edo.models.audit import ActivityEntry, HistoryEntry, Notice
from edo.models.base import ApiModel
from edo.models.document import DocumentLine, DocumentStatus, IncomingDocument
from edo.models.matching import LineMatch, MatchCandidate
from edo.models.product import InventoryProduct, seed_catalog
from edo.models.receipt import ReceiptDraft

class DetailTab(str, Enum):
    LINES = "lines"
    RECEIPT = "receipt"
    SIGNATURE = "signature"
    HISTORY = "history"

class DocumentSession(ApiModel):
    """
    Everything the console knows about one document, keyed by docflow id.
    """
    document: IncomingDocument
    lines: List[DocumentLine] = Field(default_factory=list)
    matches: Dict[int, Optional[LineMatch]] = Field(default_factory=dict)
    candidates: Dict[int, List[MatchCandidate]] = Field(default_factory=dict)
    parsed_xml: str = ""
    placeholder_lines: bool = False

    receipt_id: Optional[str] = None
    receipt_status: Optional[str] = None

    # Stored lifecycle position; lines-matched is never stored, see `status`
    stored_status: DocumentStatus = DocumentStatus.INCOMING
    history: List[HistoryEntry] = Field(default_factory=list)

    @classmethod
    def for_document(cls, document: IncomingDocument) -> "DocumentSession":
        return cls(document=document, stored_status=DocumentStatus.from_backend(document.status))

    @property
    def docflow_id(self) -> str:
        return self.document.docflow_id

    @property
    def status(self) -> DocumentStatus:
        """Lifecycle status with lines-pending/lines-matched derived from the draft."""
        if self.stored_status in (DocumentStatus.LINES_PENDING, DocumentStatus.LINES_MATCHED):
            if self.lines and self.draft().ready:
                return DocumentStatus.LINES_MATCHED
            return DocumentStatus.LINES_PENDING
        return self.stored_status

    def draft(self) -> ReceiptDraft:
        return ReceiptDraft.build(self.lines, self.matches)

    def line(self, index: int) -> Optional[DocumentLine]:
        return next((line for line in self.lines if line.index == index), None)

    def set_lines(self, lines: List[DocumentLine], placeholder: bool = False):
        """Replace the line set; matches and candidates of the old set are dropped."""
        self.lines = list(lines)
        self.matches = {line.index: None for line in self.lines}
        self.candidates = {}
        self.placeholder_lines = placeholder

    def apply_lines(self, payloads: List[Dict[str, Any]]):
        """
        Take the backend's line store (lines with their match and candidates).

        Every payload is parsed before anything is replaced, so a malformed
        store leaves the session as it was.
        """
        lines = [DocumentLine.normalize(payload) for payload in payloads]
        parsed = [self._parse_match_payload(payload) for payload in payloads]
        self.set_lines(lines)
        for index, match, candidates in parsed:
            self.matches[index] = match
            self.candidates[index] = candidates

    def apply_line_update(self, payload: Dict[str, Any]):
        line = DocumentLine.normalize(payload)
        index, match, candidates = self._parse_match_payload(payload)
        for position, existing in enumerate(self.lines):
            if existing.index == line.index:
                self.lines[position] = line
                break
        else:
            self.lines.append(line)
        self.matches[index] = match
        self.candidates[index] = candidates

    @staticmethod
    def _parse_match_payload(payload: Dict[str, Any]) -> Tuple[int, Optional[LineMatch], List[MatchCandidate]]:
        items = payload.get("candidates")
        candidates = [
            MatchCandidate.from_payload(item)
            for item in (items if isinstance(items, list) else [])
            if isinstance(item, dict)
        ]
        match = payload.get("match")
        return (
            int(payload["index"]),
            LineMatch.from_payload(match if isinstance(match, dict) else None),
            [candidate for candidate in candidates if candidate is not None],
        )

    def add_history(self, text: str) -> HistoryEntry:
        entry = HistoryEntry(text=text)
        self.history.insert(0, entry)
        return entry

class ConsoleState(ApiModel):
    """
    Session object owned by one EdoConsole. There is no module-level state.
    """
    documents: List[IncomingDocument] = Field(default_factory=list)
    doc_store: Dict[str, DocumentSession] = Field(default_factory=dict)
    inventory: List[InventoryProduct] = Field(default_factory=seed_catalog)

    selected_document_id: Optional[str] = None
    detail_tab: DetailTab = DetailTab.LINES
    server_config: Optional[Dict[str, Any]] = None

    loading_documents: bool = False
    loading_lines: bool = False

    activity_log: List[ActivityEntry] = Field(default_factory=list)
    notices: List[Notice] = Field(default_factory=list)
    error: Optional[str] = None

    def find_document(self, docflow_id: Optional[str]) -> Optional[IncomingDocument]:
        if not docflow_id:
            return None
        return next((doc for doc in self.documents if doc.docflow_id == docflow_id), None)

    def ensure_session(self, document: IncomingDocument) -> DocumentSession:
        session = self.doc_store.get(document.docflow_id)
        if session is None:
            session = DocumentSession.for_document(document)
            self.doc_store[document.docflow_id] = session
        return session

    def session(self, docflow_id: Optional[str]) -> Optional[DocumentSession]:
        if not docflow_id:
            return None
        return self.doc_store.get(docflow_id)

    @property
    def selected_session(self) -> Optional[DocumentSession]:
        return self.session(self.selected_document_id)
