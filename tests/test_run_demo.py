import httpx
import pytest

from scripts.run_demo import parse_args, run_scenario

def test_parse_args_defaults():
    args = parse_args([])
    assert args.scenario == "match"
    assert args.doc is None

@pytest.mark.asyncio
async def test_match_scenario(backend, capsys):
    backend.fail("auto_match", 404)

    console = await run_scenario(
        "match", base_url="http://edo.test", transport=httpx.ASGITransport(app=backend.app),
    )

    session = console.state.session("DF-001")
    assert session.matches[0].product_id == "prd-101"
    out = capsys.readouterr().out
    assert "parse-document: ok" in out
    assert "auto-match: ok" in out
    assert "Сыр Моцарелла 45%" in out

@pytest.mark.asyncio
async def test_feed_scenario_on_chosen_document(backend, capsys):
    console = await run_scenario(
        "feed", base_url="http://edo.test", doc_id="DF-002", transport=httpx.ASGITransport(app=backend.app),
    )
    assert console.state.selected_document_id == "DF-002"
    assert "подписан" in capsys.readouterr().out
