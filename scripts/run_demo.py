import asyncio
import argparse
import logging
from typing import List, Optional

import httpx

from edo.config import settings
from edo.tools.edo_client import EdoClient
from edo.workflow.controller import Command, EdoConsole, Intent
from edo.workflow.render import ConsoleView

logger = logging.getLogger(__name__)

# Steps run after the feed is loaded, in order
SCENARIOS = {
    "feed": [],
    "match": [Intent.PARSE_DOCUMENT, Intent.AUTO_MATCH],
    "receipt": [Intent.PARSE_DOCUMENT, Intent.AUTO_MATCH, Intent.CREATE_RECEIPT],
}


async def run_scenario(
    scenario_name: str,
    base_url: Optional[str] = None,
    doc_id: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> EdoConsole:
    print(f"--- Running Scenario: {scenario_name} ---")
    async with EdoClient(base_url=base_url, transport=transport) as client:
        console = EdoConsole(client)
        await console.start()
        if doc_id:
            await console.dispatch(Command(intent=Intent.SELECT_DOCUMENT, doc_id=doc_id))

        for intent in SCENARIOS[scenario_name]:
            result = await console.dispatch(Command(intent=intent))
            status = "ok" if result.ok else "failed"
            print(f"{intent.value}: {status}")
            for notice in result.notices:
                print(f"  [{notice.level.value}] {notice.message}")

        print_view(console.render())
        return console


def print_view(view: ConsoleView):
    if view.banner:
        print(f"! {view.banner}")
    print(f"{view.config.label} | документов: {view.document_count} | журнал: {view.log_count}")
    for row in view.documents:
        marker = ">" if row.selected else " "
        print(f"{marker} {row.date:16} {row.counterparty:30} {row.number:24} {row.total:>14} {row.status_label}")

    detail = view.detail
    if detail is None:
        return
    print(f"\n{detail.number or detail.docflow_id}: {detail.status_label}")
    for line in detail.lines:
        print(f"  {line.index + 1}. {line.name} x{line.quantity:g} -> {line.match_label or 'не сопоставлено'}")
        for number, option in enumerate(line.options, start=1):
            print(f"       {number}) {option.label}")
    if detail.receipt is not None:
        state = "готов" if detail.receipt.ready else f"не сопоставлено строк: {detail.receipt.unmatched}"
        print(f"  Приход: {detail.receipt.total} ({state})")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Walk the EDO console through a demo scenario")
    parser.add_argument("--scenario", choices=sorted(SCENARIOS), default="match", help="Scenario to run")
    parser.add_argument("--base-url", default=settings.EDO_API_BASE, help="EDO backend API root")
    parser.add_argument("--doc", default=None, help="Docflow id to work on (default: first in feed)")
    return parser.parse_args(argv)


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    args = parse_args()
    asyncio.run(run_scenario(args.scenario, base_url=args.base_url, doc_id=args.doc))
