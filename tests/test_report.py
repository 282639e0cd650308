# Author: evm-deployer developers

import json
from pathlib import Path

from eth_abi import encode
import pytest
from structlog.testing import capture_logs

from evm_deployer.contract import Contract
from evm_deployer.coverage.collector import CoverageCollector
from evm_deployer.coverage.event import coverage_event_abi
from evm_deployer.coverage.report import render_html, render_json, write_coverage_reports


@pytest.fixture
def collector(coverage_contract: Contract) -> CoverageCollector:
    collector = CoverageCollector()
    collector.load_contract(coverage_contract)
    collector.add_statement("A", 15, 14, 0)
    collector.collect_coverage_event(
        "A",
        coverage_event_abi(1),
        {"data": encode(["uint64"] * 3, [34, 6, 0])},
    )
    return collector


def test_render_html(collector: CoverageCollector, counter_source: Path) -> None:
    html: str = render_html(collector)
    assert f"{counter_source} (1/2)" in html
    assert "50.0%" in html
    assert '<td class="cov">    x = 1;</td>' in html
    assert '<td class="nocov">  function f() {</td>' in html


def test_render_html_escapes(tmp_path: Path) -> None:
    source: Path = tmp_path / "B.sol"
    source.write_text('string s = "<b>";\n')
    contract = Contract(
        name="B",
        source_path=str(source),
        all_paths=[str(source)],
        coverage=True,
    )
    collector = CoverageCollector()
    collector.load_contract(contract)
    collector.add_statement("B", 0, 5, 0)
    html: str = render_html(collector)
    assert "&lt;b&gt;" in html
    assert '"<b>"' not in html


def test_render_html_missing_source(tmp_path: Path) -> None:
    source: Path = tmp_path / "C.sol"
    source.write_text("x = 1;\n")
    contract = Contract(
        name="C",
        source_path=str(source),
        all_paths=[str(source)],
        coverage=True,
    )
    collector = CoverageCollector()
    collector.load_contract(contract)
    collector.add_statement("C", 0, 6, 0)
    source.unlink()

    with capture_logs() as logs:
        html: str = render_html(collector)

    assert f"{source} (0/1)" in html
    (entry,) = [log for log in logs if log["log_level"] == "warning"]
    assert entry["file"] == str(source)
    assert "Failed to read source" in entry["event"]


def test_render_json(collector: CoverageCollector, counter_source: Path) -> None:
    (profile,) = json.loads(render_json(collector))
    assert profile["file_name"] == str(counter_source)
    assert profile["mode"] == "count"
    assert [block["count"] for block in profile["blocks"]] == [0, 1]


def test_write_reports(collector: CoverageCollector, tmp_path: Path) -> None:
    assert write_coverage_reports(collector) == []

    written = write_coverage_reports(
        collector,
        output=tmp_path / "cover.out",
        html_output=tmp_path / "cover.html",
        json_output=tmp_path / "cover.json",
    )
    assert written == [tmp_path / "cover.out", tmp_path / "cover.html", tmp_path / "cover.json"]
    assert (tmp_path / "cover.out").read_text().startswith("mode: count\n")
    assert json.loads((tmp_path / "cover.json").read_text())
