import argparse

from src.second_purchase.pipeline import pipe, refit_buyer_thresholds
from src.utils.bq import BQ
from src.utils.log import setup_logging


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run second purchase propensity scoring",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Score and segment with the pinned buyer thresholds (default)
  python scripts/second_purchase.py

  # Refit buyer thresholds on the training population for review
  python scripts/second_purchase.py --refit-thresholds
        """,
    )
    parser.add_argument(
        "--refit-thresholds",
        action="store_true",
        help="Derive new buyer segment thresholds instead of scoring; nothing is written",
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    log = setup_logging("second_purchase")
    bq = BQ()

    if args.refit_thresholds:
        thresholds = refit_buyer_thresholds(bq)
        log.info(f"Pin BUYER_SEGMENT_THRESHOLDS = {thresholds.edges} after review")
        return

    pipe(bq)
    log.info("Production pipeline completed")


if __name__ == "__main__":
    main()
