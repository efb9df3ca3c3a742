from edo.models.base import ApiModel
from edo.models.document import IncomingDocument, DocumentLine, DocumentStatus
from edo.models.product import InventoryProduct, ProductDraft, ProductType
from edo.models.matching import MatchCandidate, LineMatch, MatchSource
from edo.models.receipt import ReceiptDraft, ReceiptDraftItem, ReceiptRequest, ReceiptLine
from edo.models.audit import HistoryEntry, ActivityEntry, Notice, NoticeLevel
