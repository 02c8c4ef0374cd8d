import argparse
import json
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from community_match.config import MATCH_DEFAULT_LIMIT
from community_match.services.calibration import compute_calibration_report
from community_match.services.matching import MatchingService, MatchOptions
from community_match.services.seeding import generate_pool, load_pool


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a match score calibration report")
    parser.add_argument("--pool", type=str, default="", help="JSON pool written by scripts/seed.py")
    parser.add_argument("--n-users", type=int, default=100, help="synthetic pool size when --pool is not given")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--limit", type=int, default=MATCH_DEFAULT_LIMIT)
    args = parser.parse_args()

    if args.pool:
        pool = load_pool(json.loads(Path(args.pool).read_text()))
    else:
        pool = generate_pool(args.n_users, seed=args.seed)

    report = compute_calibration_report(
        MatchingService(),
        pool["profiles"],
        options=MatchOptions(
            connections=pool["connections"],
            communities=pool["communities"],
            events=pool["events"],
        ),
        limit=args.limit,
    )

    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
