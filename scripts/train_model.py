"""Command-line interface for training the purchase-propensity model.

Optionally imports history from CSV first, then trains the weights from all
recorded training examples and writes the store snapshot and weight file
to the data directory.

Example:
    Train from the existing snapshot in data/:
        $ python scripts/train_model.py

    Replay an interaction log, then train:
        $ python scripts/train_model.py --events data/fake_interactions.csv \\
            --data-dir data/production \\
            --random-state 42
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from smartbuy.config import EngineConfig
from smartbuy.recommender.engine import SuggestionEngine
from smartbuy.recommender.utils import load_interactions_csv, load_purchases_csv


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the script.

    Args:
        verbose: If True, set log level to DEBUG. Otherwise, use INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_arguments() -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Namespace object containing parsed arguments.
    """
    defaults = EngineConfig.from_env()
    parser = argparse.ArgumentParser(
        description="Train the purchase-propensity model from recorded examples.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Train from the snapshot in the data directory
  python scripts/train_model.py

  # Replay an interaction log into a fresh data directory and train
  python scripts/train_model.py --events data/fake_interactions.csv --data-dir data/dev

  # Import plain purchase history (no training examples are created)
  python scripts/train_model.py --purchases data/purchases.csv
        """,
    )

    parser.add_argument(
        "--events",
        type=str,
        help="CSV of interaction events (user_id, product_id, action, timestamp) to replay",
    )
    parser.add_argument(
        "--purchases",
        type=str,
        help="CSV of purchase history (user_id, product_id, timestamp) to import",
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=defaults.data_dir,
        help=f"Directory for the store snapshot and weights (default: {defaults.data_dir})",
    )
    parser.add_argument(
        "--learning-rate",
        type=float,
        default=defaults.learning_rate,
        help=f"Gradient descent step size (default: {defaults.learning_rate})",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        default=defaults.iterations,
        help=f"Full-batch iterations (default: {defaults.iterations})",
    )
    parser.add_argument(
        "--random-state",
        type=int,
        default=defaults.random_state,
        help="Random seed for the train/test shuffle",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args()


def main() -> int:
    """Main entry point for the training script.

    Returns:
        Exit code: 0 on success, 1 on error.
    """
    try:
        args = parse_arguments()
        setup_logging(verbose=args.verbose)
        logger = logging.getLogger(__name__)

        config = replace(
            EngineConfig.from_env(),
            data_dir=args.data_dir,
            learning_rate=args.learning_rate,
            iterations=args.iterations,
            random_state=args.random_state,
        )
        engine = SuggestionEngine.from_data_dir(config)

        if args.purchases:
            _, n = load_purchases_csv(args.purchases, store=engine.store)
            logger.info(f"Imported {n} purchases from {args.purchases}")
        if args.events:
            engine.replay(load_interactions_csv(args.events))

        logger.info("=" * 70)
        logger.info("Training Configuration")
        logger.info("=" * 70)
        logger.info(f"Data directory:    {config.data_dir}")
        logger.info(f"Learning rate:     {config.learning_rate}")
        logger.info(f"Iterations:        {config.iterations}")
        logger.info(f"Random state:      {config.random_state}")
        logger.info("=" * 70)

        result = engine.train()
        snapshot_path = engine.save()

        logger.info("=" * 70)
        logger.info("Training Summary")
        logger.info("=" * 70)
        logger.info(f"Examples used:     {result.num_examples} ({result.num_train} train / {result.num_test} test)")
        logger.info(f"Default weights:   {result.used_defaults}")
        if result.accuracy is not None:
            logger.info(f"Test accuracy:     {result.accuracy:.4f}")
        logger.info(f"Weights version:   {result.version}")
        for name, weight in result.weights.items():
            logger.info(f"  {name:<28} {weight:+.4f}")
        logger.info(f"Snapshot saved to: {snapshot_path.absolute()}")
        logger.info("=" * 70)
        return 0

    except FileNotFoundError as e:
        logging.error(f"File error: {e}")
        return 1
    except ValueError as e:
        logging.error(f"Validation error: {e}")
        return 1
    except KeyboardInterrupt:
        logging.warning("Training interrupted by user")
        return 130
    except Exception as e:
        logging.error(f"Unexpected error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
