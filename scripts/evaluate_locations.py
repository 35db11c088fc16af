# scripts/evaluate_locations.py
"""
Run the pest-risk pipeline against reference locations (or one coordinate)
and print a summary. Read-only: nothing is dispatched and the subscription
store is not touched.

    python scripts/evaluate_locations.py
    python scripts/evaluate_locations.py --lat 5.36 --lon -4.0083 --validate
"""

import argparse
import json
import sys
from collections import Counter
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.pestalert.config import load_settings  # noqa: E402
from backend.pestalert.history import StaticPestHistory  # noqa: E402
from backend.pestalert.logging_setup import logger  # noqa: E402
from backend.pestalert.pipeline import PestRiskEngine  # noqa: E402
from backend.pestalert.providers import WeatherGateway  # noqa: E402
from backend.pestalert.schemas import Location, RiskLevel  # noqa: E402

REFERENCE_LOCATIONS = {
    "abidjan": Location(lat=5.36, lon=-4.0083, country="Côte d'Ivoire", region="Abidjan"),
    "bamako": Location(lat=12.6392, lon=-8.0029, country="Mali", region="Bamako"),
    "lome": Location(lat=6.1375, lon=1.2123, country="Togo", region="Maritime"),
    "cotonou": Location(lat=6.3703, lon=2.3912, country="Benin", region="Littoral"),
    "ouagadougou": Location(lat=12.3714, lon=-1.5197, country="Burkina Faso", region="Centre"),
}


def summarize(results):
    levels = Counter(a.level.value for _, a in results)
    confidences = [a.confidence for _, a in results]
    return {
        "evaluated": len(results),
        "levels": {lvl.value: levels.get(lvl.value, 0) for lvl in RiskLevel},
        "mean_confidence": round(sum(confidences) / len(confidences), 3) if confidences else None,
        "results": [
            {
                "name": name,
                "level": a.level.value,
                "score": round(a.score, 3),
                "confidence": a.confidence,
                "source": a.source_label.value,
                "season": a.season,
            }
            for name, a in results
        ],
    }


def main(argv=None):
    parser = argparse.ArgumentParser(description="Evaluate pest risk for reference locations")
    parser.add_argument("--lat", type=float, help="latitude of a single location to evaluate")
    parser.add_argument("--lon", type=float, help="longitude of a single location to evaluate")
    parser.add_argument("--only", nargs="*", choices=sorted(REFERENCE_LOCATIONS), help="subset of reference locations")
    parser.add_argument("--validate", action="store_true", help="always cross-check with secondary providers")
    parser.add_argument("--history-days", type=int, default=None, help="days since last confirmed attack")
    parser.add_argument("--show-messages", action="store_true", help="print the advisory message per location")
    parser.add_argument("--config", type=Path, default=None, help="JSON settings file")
    args = parser.parse_args(argv)

    if (args.lat is None) != (args.lon is None):
        parser.error("--lat and --lon must be given together")

    settings = load_settings(args.config)
    history_days = args.history_days if args.history_days is not None else settings.default_history_days
    gateway = WeatherGateway.from_settings(settings)
    engine = PestRiskEngine(gateway, StaticPestHistory(default_days=history_days), settings)

    if args.lat is not None:
        targets = {f"{args.lat},{args.lon}": Location(lat=args.lat, lon=args.lon)}
    else:
        names = args.only or sorted(REFERENCE_LOCATIONS)
        targets = {name: REFERENCE_LOCATIONS[name] for name in names}

    results = []
    try:
        for name, location in targets.items():
            assessment = engine.evaluate(location, subscriber_id=f"cli:{name}", validate=args.validate)
            results.append((name, assessment))
            if args.show_messages:
                print(f"--- {name} ---\n{assessment.message}\n")
    finally:
        gateway.close()

    summary = summarize(results)
    logger.info(f"[evaluate_locations] levels={summary['levels']} mean_confidence={summary['mean_confidence']}")
    print(json.dumps(summary, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
