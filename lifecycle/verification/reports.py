"""Batch report persistence."""

from __future__ import annotations

from pathlib import Path

from lifecycle.common.fs import read_json, write_json
from lifecycle.common.models import BatchReport


def write_batch_report(report: BatchReport, reports_dir: Path) -> Path:
    report_path = reports_dir / f"{report.run_id}.json"
    write_json(report_path, report.to_dict())
    write_json(reports_dir / "latest.json", {"run_id": report.run_id, "status": report.status, "path": report_path.name})
    return report_path


def read_latest_report(reports_dir: Path) -> dict | None:
    pointer_path = reports_dir / "latest.json"
    if not pointer_path.exists():
        return None
    pointer = read_json(pointer_path)
    return read_json(reports_dir / pointer["path"])
