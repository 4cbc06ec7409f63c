from __future__ import annotations

import argparse
import datetime as dt
import json
from collections import Counter
from pathlib import Path

from curriculum_rollup_api.db import Base, SessionLocal, engine
import curriculum_rollup_api.models  # noqa: F401
from curriculum_rollup_api.services.recompute import recompute_all
from curriculum_rollup_api.services.rule_config import get_rule_set
from curriculum_rollup_api.services.snapshot import load_snapshot

ROOT = Path(__file__).resolve().parents[1]
REPORT_PATH = ROOT / "reports" / "status_rollup.json"


def _ensure_schema() -> None:
    # Allows running against a fresh SQLite file.
    Base.metadata.create_all(bind=engine)


def build_report(map_id: int) -> dict:
    with SessionLocal() as db:
        entities, edges = load_snapshot(db, map_id)
        rule_set = get_rule_set(db)

    updated = recompute_all(entities, edges, rule_set)
    counts = Counter(entity.computed_status.value for entity in updated)
    return {
        "generated_at": dt.datetime.now(dt.timezone.utc).isoformat(),
        "map_id": map_id,
        "entities": len(updated),
        "edges": len(edges),
        "status_counts": dict(sorted(counts.items())),
        "statuses": {
            entity.id: {
                "kind": entity.kind.value,
                "label": entity.label,
                "status": entity.computed_status.value,
                "kpis": {key.value: value for key, value in (entity.computed_kpis or {}).items()},
            }
            for entity in updated
        },
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Recompute KPI and status for every node of a curriculum map.")
    parser.add_argument("map_id", type=int)
    parser.add_argument("--out", type=Path, default=REPORT_PATH)
    args = parser.parse_args()

    _ensure_schema()
    report = build_report(args.map_id)
    args.out.parent.mkdir(parents=True, exist_ok=True)
    args.out.write_text(json.dumps(report, indent=2), encoding="utf-8")
    print(json.dumps({k: report[k] for k in ("map_id", "entities", "status_counts")}, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
