"""
Persist overdue statuses.

Purchase statuses are already re-evaluated on every read, but the stored
status only changes when something writes it. This script runs the sweep
that persists PENDING -> OVERDUE for every purchase whose due date has passed
while money is still owed, and broadcasts the change.

Safe to run at any time and as often as needed: the sweep is idempotent.
"""

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add parent directory to path so we can import from services
sys.path.insert(0, str(Path(__file__).parent.parent))

import config
from api.dependencies import build_container, build_repositories


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Persist the overdue status of purchases whose due date has passed",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Sweep every shop
  python refresh_overdue.py

  # Sweep a single shop
  python refresh_overdue.py --shop-id shop-123

Schedule via cron (hourly):
  0 * * * * cd /app && python scripts/refresh_overdue.py
        """
    )

    parser.add_argument(
        "--shop-id",
        type=str,
        help="Only sweep this shop (default: all shops)"
    )

    parser.add_argument(
        "--as-of-date",
        type=str,
        help="ISO timestamp to evaluate due dates against (default: now)"
    )

    args = parser.parse_args()
    config.configure_logging()

    try:
        clock = None
        if args.as_of_date:
            as_of_date = datetime.fromisoformat(args.as_of_date)
            if as_of_date.tzinfo is None:
                as_of_date = as_of_date.replace(tzinfo=timezone.utc)
            as_of_date = as_of_date.astimezone(timezone.utc)
            clock = lambda: as_of_date  # noqa: E731

        customer_repo, purchase_repo = build_repositories(config.STORAGE_BACKEND)
        container = build_container(customer_repo, purchase_repo, clock=clock)

        print("Refreshing overdue statuses...")
        refreshed = container.purchases.refresh_overdue_status(args.shop_id)
        container.close()

        print()
        print("=" * 60)
        print(f"Purchases marked overdue: {len(refreshed)}")
        for purchase in refreshed:
            print(
                f"  {purchase.purchase_id}  shop={purchase.shop_id}  "
                f"due={purchase.due_date.isoformat() if purchase.due_date else '-'}  "
                f"remaining={purchase.remaining_amount}"
            )
        print("=" * 60)
        return 0

    except KeyboardInterrupt:
        print("\n\nOverdue refresh interrupted by user")
        return 130

    except Exception as e:
        print(f"\nFATAL ERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
