from __future__ import annotations

import argparse
import json
import logging
import random
import sys
from pathlib import Path
from typing import Any, Dict

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from trainer.api import deps  # noqa: E402
from trainer.engine.catalog_utils import parse_date  # noqa: E402
from trainer.engine.config import INTENT_MODES, LOCATIONS  # noqa: E402
from trainer.engine.context_builder import ContextError  # noqa: E402
from trainer.engine.recommend import UnknownParkError, recommend_workout  # noqa: E402


def _read_json(path: Path) -> Dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def _compact(result: Dict[str, Any]) -> Dict[str, Any]:
    """Drop the full catalog entries from workout exercises for a readable dump."""
    workout = result.get("workout")
    if not workout:
        return result
    exercises = [{k: v for k, v in e.items() if k != "exercise"} for e in workout["exercises"]]
    return {**result, "workout": {**workout, "exercises": exercises}}


def main() -> int:
    parser = argparse.ArgumentParser(description="Recommend one workout for the stored (or given) user profile")
    parser.add_argument("--profile", default=str(deps.PROFILE_PATH.relative_to(REPO_ROOT)))
    parser.add_argument("--location", choices=list(LOCATIONS))
    parser.add_argument("--intent", choices=list(INTENT_MODES))
    parser.add_argument("--time", type=int, help="available minutes")
    parser.add_argument("--park-id")
    parser.add_argument("--difficulty", type=int, choices=[1, 2, 3])
    parser.add_argument("--today", help="YYYY-MM-DD (default: today)")
    parser.add_argument("--seed", type=int, help="random pick inside the exercise-count band")
    parser.add_argument("--out", default="", help="write JSON here instead of stdout")
    parser.add_argument("--full", action="store_true", help="keep full catalog entries in the output")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    profile_path = Path(args.profile)
    if not profile_path.is_absolute():
        profile_path = REPO_ROOT / profile_path
    profile = _read_json(profile_path) if profile_path.exists() else {}

    overrides = {
        "location": args.location,
        "intent_mode": args.intent,
        "available_time": args.time,
        "park_id": args.park_id,
        "difficulty": args.difficulty,
    }

    try:
        result = recommend_workout(
            profile,
            deps.get_exercise_catalog(),
            equipment_definitions=deps.get_fixed_equipment_definitions(),
            parks=deps.get_parks(),
            today=parse_date(args.today) if args.today else None,
            overrides={k: v for k, v in overrides.items() if v is not None},
            config=deps.load_engine_config(),
            rng=random.Random(args.seed) if args.seed is not None else None,
        )
    except (ContextError, UnknownParkError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    if not args.full:
        result = _compact(result)
    text = json.dumps(result, ensure_ascii=False, indent=2)

    if not args.out:
        print(text)
    else:
        out_path = Path(args.out)
        if not out_path.is_absolute():
            out_path = REPO_ROOT / out_path
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text + "\n", encoding="utf-8")
        try:
            printable = out_path.relative_to(REPO_ROOT)
        except ValueError:
            printable = out_path
        print(f"Wrote workout: {printable}")
    return 0 if result["status"] == "ok" else 1


if __name__ == "__main__":
    raise SystemExit(main())
