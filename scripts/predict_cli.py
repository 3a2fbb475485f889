"""CLI script for getting product suggestions.

Useful for testing and evaluation. Loads the engine from a data directory
and prints ranked suggestions for a user or household.
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from smartbuy.config import EngineConfig
from smartbuy.recommender.engine import SuggestionEngine

# Setup logging
logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

MODES = ("suggest", "rank", "household", "due-soon")


def print_suggestions(engine: SuggestionEngine, args: argparse.Namespace) -> None:
    if args.mode == "rank":
        ranked = engine.rank(args.products, args.user_id, args.household_id)
        print(f"\nModel ranking for user {args.user_id}:")
        for r in ranked[: args.top_n]:
            print(f"  {r.product_id:<12} p={r.probability:.4f}")
        return

    if args.mode in ("household", "due-soon"):
        if not args.household_id:
            print("Error: --household-id is required for this mode", file=sys.stderr)
            sys.exit(1)
        if args.mode == "household":
            items = engine.household_suggestions(args.household_id, limit=args.top_n)
        else:
            items = engine.due_soon(args.household_id, limit=args.top_n)
        print(f"\nHousehold {args.household_id} ({args.mode}):")
        for s in items:
            print(
                f"  {s.product_id:<12} score={s.household_score:>3} "
                f"next_in={s.next_purchase_in} confidence={s.confidence:.2f} "
                f"({s.shopping_frequency})"
            )
        return

    merged = engine.suggest(args.user_id, args.products, args.household_id, limit=args.top_n)
    print(f"\nSuggestions for user {args.user_id}:")
    for s in merged:
        line = f"  {s.product_id:<12} score={s.score:.4f}"
        if args.explain:
            line += f" (model={s.model_score:.4f}, household={s.household_score:.2f})"
        print(line)


def main() -> None:
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Get product suggestions for a user or household",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/predict_cli.py u1_1 --household-id h1
  python scripts/predict_cli.py u1_1 --mode rank --products p1 p2 p3
  python scripts/predict_cli.py u1_1 --household-id h1 --mode due-soon
  python scripts/predict_cli.py u1_1 --household-id h1 --explain
        """,
    )

    parser.add_argument("user_id", type=str, help="User ID to get suggestions for")
    parser.add_argument("--household-id", type=str, default=None, help="Household of the user")
    parser.add_argument(
        "--products",
        nargs="*",
        default=[],
        help="Candidate product IDs (default: the household's tracked products)",
    )
    parser.add_argument(
        "--mode",
        choices=MODES,
        default="suggest",
        help="suggest (merged), rank (model only), household or due-soon (default: suggest)",
    )
    parser.add_argument("--top-n", type=int, default=10, help="Number of results (default: 10)")
    parser.add_argument("--data-dir", type=str, default=None, help="Data directory to load")
    parser.add_argument("--explain", action="store_true", help="Show score breakdown")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    config = EngineConfig.from_env()
    if args.data_dir:
        config = replace(config, data_dir=args.data_dir)

    try:
        engine = SuggestionEngine.from_data_dir(config)
    except Exception as e:
        print(f"Error: could not load data from {config.data_dir}", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        sys.exit(1)

    print_suggestions(engine, args)
    print()


if __name__ == "__main__":
    main()
