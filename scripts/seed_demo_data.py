"""
Seed a demo shop with customers and credit purchases.

Purchases go through the purchase service, so totals, statuses and customer
statistics come out exactly as they would from the API. Purchases are spread
over the last 30 days; about a third are only half paid and carry a 30-day due
date, some of which have already passed.

Use --seed for a reproducible data set.
"""

import argparse
import random
import sys
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

# Add parent directory to path so we can import from services
sys.path.insert(0, str(Path(__file__).parent.parent))

import config
from api.dependencies import build_container, build_repositories
from domain.customer import Address
from domain.purchase import PaymentMethod, PurchaseItem
from domain.time import utc_now
from services.customer_service import CustomerDraft
from services.purchase_service import PurchaseDraft

DEMO_SHOP_ID = "demo-shop"

SAMPLE_CUSTOMERS = [
    ("Priya Sharma", "priya.sharma@email.com", "+91-9876543211", "45 Park Avenue", "400001"),
    ("Amit Kumar", "amit.kumar@email.com", "+91-9876543212", "78 Gandhi Road", "400002"),
    ("Sneha Patel", "sneha.patel@email.com", "+91-9876543213", "12 Commercial Street", "400003"),
    ("Rajesh Gupta", "rajesh.gupta@email.com", "+91-9876543214", "56 Market Road", "400004"),
    ("Anita Singh", "anita.singh@email.com", "+91-9876543215", "89 Station Road", "400005"),
]

PRODUCTS = [
    ('LED TV 43"', Decimal("35000")),
    ("Smartphone", Decimal("15000")),
    ("Laptop", Decimal("45000")),
    ("Washing Machine", Decimal("25000")),
    ("Refrigerator", Decimal("30000")),
    ("Air Conditioner", Decimal("40000")),
    ("Microwave Oven", Decimal("12000")),
    ("Headphones", Decimal("2000")),
    ("Tablet", Decimal("20000")),
    ("Smart Watch", Decimal("8000")),
]

METHODS = [PaymentMethod.CASH, PaymentMethod.CARD, PaymentMethod.UPI, PaymentMethod.BANK_TRANSFER]


def seed_demo_data(shop_id: str, rng: random.Random) -> dict:
    customer_repo, purchase_repo = build_repositories(config.STORAGE_BACKEND)
    container = build_container(customer_repo, purchase_repo)
    now = utc_now()
    stats = {"customers": 0, "purchases": 0}

    try:
        for name, email, phone, street, zip_code in SAMPLE_CUSTOMERS:
            customer = container.customers.create_customer(
                shop_id,
                CustomerDraft(
                    name=name,
                    email=email,
                    phone=phone,
                    address=Address(street=street, city="Mumbai", state="Maharashtra", zip_code=zip_code),
                ),
            )
            stats["customers"] += 1

            for index in range(rng.randint(2, 4)):
                product, price = rng.choice(PRODUCTS)
                quantity = rng.randint(1, 2)
                purchase_date = now - timedelta(days=rng.randint(1, 30))
                total = price * quantity
                fully_paid = rng.random() > 0.3

                container.purchases.create_purchase(
                    shop_id,
                    PurchaseDraft(
                        customer_id=customer.customer_id,
                        items=[PurchaseItem(product_name=product, quantity=quantity, unit_price=price)],
                        paid_amount=total if fully_paid else (total / 2).quantize(Decimal("1")),
                        due_date=None if fully_paid else purchase_date + timedelta(days=30),
                        purchase_date=purchase_date,
                        payment_method=rng.choice(METHODS),
                        notes="First purchase" if index == 0 else None,
                    ),
                )
                stats["purchases"] += 1
    finally:
        container.close()

    return stats


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(description="Seed a demo shop with customers and purchases")
    parser.add_argument("--shop-id", type=str, default=DEMO_SHOP_ID, help=f"Shop to seed (default: {DEMO_SHOP_ID})")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for a reproducible data set")
    args = parser.parse_args()
    config.configure_logging()

    if config.STORAGE_BACKEND == "memory":
        print("WARNING: STORAGE_BACKEND=memory; seeded data is discarded when this script exits.")

    try:
        print(f"Seeding shop {args.shop_id}...")
        stats = seed_demo_data(args.shop_id, random.Random(args.seed))
        print(f"[SUCCESS] Created {stats['customers']} customers and {stats['purchases']} purchases")
        return 0

    except Exception as e:
        print(f"\n[ERROR] Seeding failed: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
