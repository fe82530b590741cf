from __future__ import annotations

import csv
import io
import json
import os
from typing import Callable, Dict, List

from .models import Report, ScanOutcome

CSV_FIELDS = ["target", "port", "status", "service", "version", "banner"]


def format_row(r: ScanOutcome) -> str:
    svc = "null"
    if r.service:
        svc = r.service.name
        if r.service.version:
            svc = f"{svc} ({r.service.version})"
    banner = r.banner or "null"
    return f"Port {r.port}: {r.state.value} ({r.elapsed_s:.4f}s) | Service: {svc} | Banner: {banner}"


def format_summary(report: Report) -> str:
    s = report.summary
    return (
        f"Scanned {s.scanned} ports in {report.elapsed_s:.2f} seconds: "
        f"{s.open} open, {s.closed} closed, {s.timed_out} timed out, {s.errored} errors"
    )


def _row_dict(report: Report, r: ScanOutcome) -> Dict[str, object]:
    return {
        "target": report.address,
        "port": r.port,
        "status": r.state.value,
        "service": r.service.name if r.service else None,
        "version": r.service.version if r.service else None,
        "banner": r.banner,
    }


def render_text(report: Report) -> str:
    lines: List[str] = [
        f"Target: {report.target} ({report.address}) | Ports: {report.port_range}",
        f"Found {report.summary.open} open ports",
    ]
    for r in report.entries:
        lines.append(format_row(r))
    lines.append(format_summary(report))
    return "\n".join(lines) + "\n"


def render_json(report: Report) -> str:
    s = report.summary
    payload = {
        "target": report.target,
        "address": report.address,
        "start_port": report.port_range.start,
        "end_port": report.port_range.end,
        "elapsed_s": report.elapsed_s,
        "summary": {
            "scanned": s.scanned,
            "open": s.open,
            "closed": s.closed,
            "timed_out": s.timed_out,
            "errored": s.errored,
        },
        "results": [_row_dict(report, r) for r in report.entries],
    }
    return json.dumps(payload, indent=2) + "\n"


def render_csv(report: Report) -> str:
    buf = io.StringIO()
    w = csv.DictWriter(buf, fieldnames=CSV_FIELDS, lineterminator="\n")
    w.writeheader()
    for r in report.entries:
        row = _row_dict(report, r)
        w.writerow({k: ("" if v is None else v) for k, v in row.items()})
    return buf.getvalue()


FORMATTERS: Dict[str, Callable[[Report], str]] = {
    "text": render_text,
    "json": render_json,
    "csv": render_csv,
}


def render(report: Report, fmt: str) -> str:
    try:
        formatter = FORMATTERS[fmt]
    except KeyError:
        raise ValueError(f"Unsupported format: {fmt}") from None
    return formatter(report)


def write_report(rendered: str, path: str) -> str:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        f.write(rendered)
    return path
