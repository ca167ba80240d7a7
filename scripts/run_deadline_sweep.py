#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from qaflow.engine import engine


def _parse_now(raw: str) -> datetime | None:
    if not raw.strip():
        return None
    return datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))


def main() -> int:
    parser = argparse.ArgumentParser(description="Notify assignees and requesters of overdue questions once")
    parser.add_argument("--now", default="", help="ISO-8601 reference time; defaults to the current UTC time")
    parser.add_argument("--log-level", default="INFO", help="logging level")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")
    try:
        now = _parse_now(args.now)
    except ValueError:
        raise SystemExit(f"invalid --now timestamp: {args.now}") from None

    outcome = engine.deadline_sweep.run(now=now)
    if not outcome.ok:
        print(json.dumps({"ok": False, "error": {"kind": str(outcome.kind), "message": outcome.message}}))
        return 1
    print(json.dumps({"ok": True, **outcome.value}, ensure_ascii=True, sort_keys=True, indent=2))
    return 0 if not outcome.value["failed_question_ids"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
