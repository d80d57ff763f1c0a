"""Report serialization.

JSON and YAML render the full report model; the plain format is meant for
people reading a terminal.
"""

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, TextIO

import yaml

from ..models.config import OutputFormat
from ..models.report import Report

logger = logging.getLogger(__name__)


def format_report(report: Report, output_format: str = OutputFormat.JSON) -> str:
    """Serialize ``report`` in the requested format."""
    data = report.model_dump(mode="json")

    if output_format == OutputFormat.JSON:
        return json.dumps(data, indent=2) + "\n"
    elif output_format == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    elif output_format == OutputFormat.PLAIN:
        return _format_plain(report)
    else:
        raise ValueError(f"Unsupported output format: {output_format}")


def _format_plain(report: Report) -> str:
    lines: List[str] = [
        f"{report.generator} metrics for <{report.url}>:",
        "",
    ]

    if report.timed_out:
        lines.extend(["Timed out!", ""])
    elif report.status == "load_failed":
        lines.extend(["Page load failed!", ""])

    for name, value in report.metrics.items():
        lines.append(f"* {name}: {value}")
        for offender in report.offenders.get(name, []):
            lines.append(f"   - {offender}")

    if report.asserts:
        lines.append("")
        for result in report.asserts:
            mark = "✓" if result.passed else "✗"
            lines.append(
                f"{mark} {result.metric}: {result.value} (threshold {result.threshold:g})"
            )
        if report.failed_asserts:
            lines.append(
                f"Failed on {report.failed_count} assert(s): {', '.join(report.failed_asserts)}"
            )

    return "\n".join(lines) + "\n"


def write_report(text: str, path: Optional[Path] = None, stream: Optional[TextIO] = None) -> None:
    """Write the serialized report to ``path`` or to the given stream (stdout)."""
    if path is not None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        logger.info(f"Report written to {path}")
        return

    stream = stream or sys.stdout
    stream.write(text)
    stream.flush()
