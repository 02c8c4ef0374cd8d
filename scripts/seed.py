import argparse
import json
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from community_match.services.seeding import dump_pool, generate_pool


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a synthetic community match pool")
    parser.add_argument("--n-users", type=int, default=100)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--out", type=str, default="pool.json")
    args = parser.parse_args()

    pool = generate_pool(args.n_users, seed=args.seed)
    Path(args.out).write_text(json.dumps(dump_pool(pool), indent=2))

    print("Seed completed")
    for k, v in pool.items():
        print(f"- {k}: {len(v)}")


if __name__ == "__main__":
    main()
