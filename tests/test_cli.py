import json

import pytest

from bookclub_catalog import cli
from bookclub_catalog.config import ENV_FIELDS
from bookclub_catalog.orchestrator import build_orchestrator


@pytest.fixture
def run_cli(monkeypatch, tmp_path, dune_client):
    for var in list(ENV_FIELDS) + ["CATALOG_SETTINGS"]:
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)
    monkeypatch.setenv("ENV_PATH", str(tmp_path / "absent.env"))
    monkeypatch.chdir(tmp_path)

    def fake_build(cfg, books, *, client=None):
        return build_orchestrator(cfg, books, client=dune_client)

    monkeypatch.setattr(cli, "build_orchestrator", fake_build)
    return cli.main


def _documents(out: str):
    decoder = json.JSONDecoder()
    docs, idx = [], 0
    out = out.strip()
    while idx < len(out):
        doc, end = decoder.raw_decode(out, idx)
        docs.append(doc)
        idx = end
        while idx < len(out) and out[idx].isspace():
            idx += 1
    return docs


def test_walks_pages_with_second_page_warm(run_cli, capsys, dune_client) -> None:
    code = run_cli(["--query", "dune", "--pages", "2", "--detail", "9780000000002", "--log-level", "warning"])

    assert code == 0
    docs = _documents(capsys.readouterr().out)
    pages = [d for d in docs if "page" in d]
    assert [p["page"] for p in pages] == [1, 2]
    assert [p["cache_hit"] for p in pages] == [False, True]
    assert [b["title"] for b in pages[1]["books"]] == ["Book 4", "Book 5"]

    detail = next(d["detail"] for d in docs if "detail" in d)
    assert detail["genre"] == "Mystery & Thriller"
    assert detail["is_favorite"] is False

    stats = docs[-1]["stats"]
    assert stats["fetches"] == 3
    assert dune_client.calls_for("dune", 2) == 1


def test_catalog_error_exits_with_code_2(run_cli, capsys) -> None:
    code = run_cli(["--query", "dune", "--detail", "9789999999999", "--log-level", "error"])
    assert code == 2
    assert "stats" in _documents(capsys.readouterr().out)[-1]


def test_invalid_page_is_rejected(run_cli) -> None:
    with pytest.raises(SystemExit):
        run_cli(["--query", "dune", "--page", "0"])
