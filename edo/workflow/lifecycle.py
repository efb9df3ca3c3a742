r"""
Document signature lifecycle.

    incoming -> lines-pending <-> lines-matched -> receipt-created -> signed -> sent
                        \_____________ any non-terminal ______________/ -> rejected

lines-pending/lines-matched is derived from the receipt draft (see
DocumentSession.status); every other move goes through `apply_transition`.
"""
import logging
from enum import Enum
from typing import Dict, FrozenSet, List

from edo.exceptions import InvalidTransition
from edo.models.document import DocumentStatus
from edo.workflow.state import DocumentSession

logger = logging.getLogger(__name__)

class LifecycleAction(str, Enum):
    PARSE = "parse"
    CREATE_RECEIPT = "create-receipt"
    SIGN = "sign"
    SEND = "send"
    REJECT = "reject"

TERMINAL_STATES: FrozenSet[DocumentStatus] = frozenset({DocumentStatus.SENT, DocumentStatus.REJECTED})

NON_TERMINAL_STATES: FrozenSet[DocumentStatus] = frozenset(set(DocumentStatus) - TERMINAL_STATES)

ALLOWED_FROM: Dict[LifecycleAction, FrozenSet[DocumentStatus]] = {
    # Lines are frozen once a receipt has been drafted from them
    LifecycleAction.PARSE: frozenset({
        DocumentStatus.INCOMING, DocumentStatus.LINES_PENDING, DocumentStatus.LINES_MATCHED,
    }),
    LifecycleAction.CREATE_RECEIPT: frozenset({DocumentStatus.LINES_MATCHED}),
    LifecycleAction.SIGN: NON_TERMINAL_STATES,
    LifecycleAction.SEND: frozenset({DocumentStatus.SIGNED}),
    LifecycleAction.REJECT: NON_TERMINAL_STATES,
}

TARGET_STATE: Dict[LifecycleAction, DocumentStatus] = {
    LifecycleAction.PARSE: DocumentStatus.LINES_PENDING,
    LifecycleAction.CREATE_RECEIPT: DocumentStatus.RECEIPT_CREATED,
    LifecycleAction.SIGN: DocumentStatus.SIGNED,
    LifecycleAction.SEND: DocumentStatus.SENT,
    LifecycleAction.REJECT: DocumentStatus.REJECTED,
}

# Provider statuses adopted when the backend reports progress made elsewhere
ADOPTED_BACKEND_STATES: FrozenSet[DocumentStatus] = frozenset({
    DocumentStatus.SIGNED, DocumentStatus.SENT, DocumentStatus.REJECTED,
})


def can_apply(session: DocumentSession, action: LifecycleAction) -> bool:
    return session.status in ALLOWED_FROM[action]


def allowed_actions(session: DocumentSession) -> List[LifecycleAction]:
    return [action for action in LifecycleAction if can_apply(session, action)]


def check_transition(session: DocumentSession, action: LifecycleAction):
    if not can_apply(session, action):
        raise InvalidTransition(action.value, session.status.value)


def apply_transition(session: DocumentSession, action: LifecycleAction) -> DocumentStatus:
    """Validate and perform one move; returns the new (derived) status."""
    check_transition(session, action)
    previous = session.status
    session.stored_status = TARGET_STATE[action]
    logger.info(f"Document {session.docflow_id}: {previous.value} -> {session.status.value} ({action.value})")
    return session.status


def lines_loaded(session: DocumentSession):
    """Lines arriving from the backend store move an untouched document forward."""
    if session.lines and session.stored_status == DocumentStatus.INCOMING:
        apply_transition(session, LifecycleAction.PARSE)


def adopt_backend_status(session: DocumentSession) -> bool:
    """Follow the feed when it reports a signature step taken outside this console."""
    reported = DocumentStatus.from_backend(session.document.status)
    if reported in ADOPTED_BACKEND_STATES and reported != session.stored_status:
        logger.info(f"Document {session.docflow_id}: adopting backend status {reported.value}")
        session.stored_status = reported
        return True
    return False
