"""Versioned contracts for machine-readable sheet-remedy outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

CONTRACT_VERSIONS = {
    "sheet_remedy.profile": "1.0.0",
    "sheet_remedy.plan": "1.0.0",
    "sheet_remedy.scan": "1.0.0",
    "sheet_remedy.review": "1.0.0",
    "sheet_remedy.export": "1.0.0",
    "sheet_remedy.quality": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    return {"name": name, "version": CONTRACT_VERSIONS[name]}


def build_run_summary(
    *,
    command: str,
    input_path: Path,
    status: str = "ok",
    output_path: Path | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": "sheet-remedy",
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_file": str(input_path),
        "output_file": str(output_path) if output_path else None,
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }


def build_payload(name: str, run_summary: dict[str, Any], **body: Any) -> dict[str, Any]:
    """Wrap a command result with its contract and run summary."""
    payload = {"contract": build_contract(name), "schema_version": CONTRACT_VERSIONS[name], "run_summary": run_summary}
    payload.update(body)
    return payload
