"""JSON-file store for simulation runs.

Simulation results live in their own directory under ``DATA_DIR`` and are
never written next to real attempt results.  One file per run holds the
serialised run under ``run`` and its listing metadata under ``meta``; a
re-run with the same id overwrites the file.  Staleness is decided by the
caller on read.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


DATA_ROOT = Path(os.getenv("DATA_DIR", "data")).resolve()
SIMULATIONS_DIR = DATA_ROOT / "simulations"

log = logging.getLogger(__name__)


def _run_path(run_id: str) -> Path:
    return SIMULATIONS_DIR / f"{run_id}.json"


def _read_record(path: Path) -> Optional[Dict[str, Any]]:
    try:
        record = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError):
        log.warning("Unreadable simulation file %s; skipping", path)
        return None
    return record if isinstance(record, dict) else None


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def save_simulation(run_id: str, run: Dict[str, Any], metadata: Dict[str, Any]) -> None:
    path = _run_path(run_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps({"meta": metadata, "run": run}, indent=2, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


def load_simulation(run_id: str) -> Optional[Dict[str, Any]]:
    record = _read_record(_run_path(run_id))
    return record.get("run") if record else None


def delete_simulation(run_id: str) -> bool:
    try:
        _run_path(run_id).unlink()
    except FileNotFoundError:
        return False
    return True


def list_simulations_for_template(template_id: str) -> List[Dict[str, Any]]:
    """Metadata of every stored run for ``template_id``, newest first."""
    if not SIMULATIONS_DIR.is_dir():
        return []
    out: List[Dict[str, Any]] = []
    for path in SIMULATIONS_DIR.glob("*.json"):
        record = _read_record(path)
        meta = (record or {}).get("meta") or {}
        if meta.get("templateId") == template_id:
            out.append({"id": path.stem, **meta})
    out.sort(key=lambda r: r.get("createdAt", ""), reverse=True)
    return out
