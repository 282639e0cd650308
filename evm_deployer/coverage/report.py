# Author: evm-deployer developers

"""HTML and JSON renderings of collected coverage."""

import json
from pathlib import Path

from jinja2.sandbox import SandboxedEnvironment
from pydantic import BaseModel
import structlog
from structlog.stdlib import BoundLogger

from evm_deployer.coverage.collector import CoverageCollector, CoverageProfile
from evm_deployer.log_categories import LogCategories

_logger: BoundLogger = structlog.get_logger(__name__).bind(
    category=LogCategories.COVERAGE
)

_HTML_TEMPLATE: str = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Coverage report</title>
<style>
body { font-family: monospace; background: #111; color: #ccc; }
table { border-collapse: collapse; }
td { padding: 0 0.5em; white-space: pre; vertical-align: top; }
.cov { color: #2c2; }
.nocov { color: #c22; }
.hits { text-align: right; color: #777; }
</style>
</head>
<body>
<h1>Coverage ({{ mode }} mode)</h1>
<ul>
{% for file in files %}
<li><a href="#file{{ loop.index0 }}">{{ file.name }}</a> {{ "%.1f"|format(file.percent) }}%</li>
{% endfor %}
</ul>
{% for file in files %}
<h2 id="file{{ loop.index0 }}">{{ file.name }} ({{ file.covered }}/{{ file.total }})</h2>
<table>
{% for line in file.lines %}
<tr><td class="hits">{{ line.number }}</td><td class="hits">{% if line.hits is not none %}{{ line.hits }}{% endif %}</td><td class="{{ line.css }}">{{ line.text }}</td></tr>
{% endfor %}
</table>
{% endfor %}
</body>
</html>
"""


class HTMLLine(BaseModel):
    number: int
    text: str
    hits: int | None = None
    css: str = ""


class HTMLFile(BaseModel):
    name: str
    covered: int
    total: int
    percent: float
    lines: list[HTMLLine]


def _annotate(profile: CoverageProfile) -> HTMLFile:
    """Marks every source line with the highest hit count of the statements
    that start on it."""
    try:
        text: list[str] = Path(profile.file_name).read_text("utf-8").splitlines()
    except OSError as e:
        _logger.warning(
            f"Failed to read source for the HTML report: {e}",
            file=profile.file_name,
        )
        text = []

    hits: dict[int, int] = {}
    for block in profile.blocks:
        if block.line_start > 0:
            hits[block.line_start] = max(hits.get(block.line_start, 0), block.count)

    lines: list[HTMLLine] = []
    for number, line in enumerate(text, start=1):
        count: int | None = hits.get(number)
        css: str = "" if count is None else ("cov" if count > 0 else "nocov")
        lines.append(HTMLLine(number=number, text=line, hits=count, css=css))

    return HTMLFile(
        name=profile.file_name,
        covered=profile.covered,
        total=len(profile.blocks),
        percent=profile.percent,
        lines=lines,
    )


def render_html(collector: CoverageCollector, *contract_names: str) -> str:
    env = SandboxedEnvironment(autoescape=True)
    template = env.from_string(_HTML_TEMPLATE)
    files: list[HTMLFile] = [
        _annotate(profile) for profile in collector.profiles(*contract_names)
    ]
    return template.render(mode=collector.mode.value, files=files)


def render_json(collector: CoverageCollector, *contract_names: str) -> str:
    return json.dumps(
        [profile.model_dump(mode="json") for profile in collector.profiles(*contract_names)],
        indent=2,
    )


def write_coverage_reports(
    collector: CoverageCollector,
    *,
    output: Path | None = None,
    html_output: Path | None = None,
    json_output: Path | None = None,
) -> list[Path]:
    """Writes the text cover profile and the HTML and JSON reports to the
    paths that are set. Returns the written paths."""
    written: list[Path] = []
    if output is not None:
        with open(output, "w", encoding="utf-8") as file:
            collector.report_text_coverfile(file)
        written.append(output)
    if html_output is not None:
        html_output.write_text(render_html(collector), encoding="utf-8")
        written.append(html_output)
    if json_output is not None:
        json_output.write_text(render_json(collector), encoding="utf-8")
        written.append(json_output)
    return written
