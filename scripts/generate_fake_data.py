"""Generate fake household shopping interactions for testing and development.

Creates a CSV of list adds, purchases and rejections for a handful of
households. Each household restocks a subset of products at its own rough
cadence, so the frequency tracker has real intervals to learn from.

Example:
    Run the script directly to generate default data:
        $ python scripts/generate_fake_data.py

    Or import and use programmatically:
        from scripts.generate_fake_data import generate_fake_interactions
        df = generate_fake_interactions(num_households=5, num_products=40)
"""

import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pandas as pd

# Default configuration constants
DEFAULT_NUM_HOUSEHOLDS = 10
DEFAULT_USERS_PER_HOUSEHOLD = 3
DEFAULT_NUM_PRODUCTS = 60
DEFAULT_PRODUCTS_PER_HOUSEHOLD = 12
DEFAULT_DAYS_BACK = 120
DEFAULT_REJECTION_RATE = 0.05

CATEGORIES = ["dairy", "produce", "bakery", "pantry", "frozen", "household", "drinks"]
STORES = ["corner-market", "hypermart", "discount-grocer"]


def generate_fake_interactions(
    num_households: int = DEFAULT_NUM_HOUSEHOLDS,
    users_per_household: int = DEFAULT_USERS_PER_HOUSEHOLD,
    num_products: int = DEFAULT_NUM_PRODUCTS,
    products_per_household: int = DEFAULT_PRODUCTS_PER_HOUSEHOLD,
    end_date: Optional[datetime] = None,
    days_back: int = DEFAULT_DAYS_BACK,
    seed: Optional[int] = None,
) -> pd.DataFrame:
    """Generate synthetic household interaction events.

    Args:
        num_households: Number of households to simulate. Must be positive.
        users_per_household: Members per household. Must be positive.
        num_products: Size of the product catalog. Must be positive.
        products_per_household: Products each household buys regularly.
        end_date: Last possible event time (defaults to now, UTC).
        days_back: Length of the simulated history in days.
        seed: Random seed for reproducible output.

    Returns:
        A DataFrame sorted by timestamp with columns user_id, household_id,
        product_id, action, timestamp, quantity, price, store, name, category.

    Raises:
        ValueError: If any count is non-positive.
    """
    if min(num_households, users_per_household, num_products, products_per_household) <= 0:
        raise ValueError("All counts must be positive")

    rng = random.Random(seed)
    end_date = end_date or datetime.now(timezone.utc)
    start_date = end_date - timedelta(days=days_back)

    catalog = {
        f"p{i}": {
            "name": f"Product {i}",
            "price": round(rng.uniform(0.5, 15.0), 2),
            "category": rng.choice(CATEGORIES),
        }
        for i in range(1, num_products + 1)
    }
    product_ids = list(catalog)

    events = []
    for h in range(1, num_households + 1):
        household_id = f"h{h}"
        members = [f"u{h}_{m}" for m in range(1, users_per_household + 1)]
        staples = rng.sample(product_ids, min(products_per_household, len(product_ids)))

        for product_id in staples:
            cadence = rng.choice([3, 7, 10, 14, 30])
            day = rng.uniform(0, cadence)
            while day < days_back:
                added_at = start_date + timedelta(days=day, hours=rng.randint(7, 21))
                bought_at = added_at + timedelta(hours=rng.randint(1, 48))
                member = rng.choice(members)
                meta = catalog[product_id]
                base = {
                    "household_id": household_id,
                    "product_id": product_id,
                    "name": meta["name"],
                    "category": meta["category"],
                }
                events.append({**base, "user_id": member, "action": "added",
                               "timestamp": added_at, "quantity": 1,
                               "price": None, "store": None})
                if bought_at <= end_date:
                    events.append({**base, "user_id": rng.choice(members),
                                   "action": "purchased", "timestamp": bought_at,
                                   "quantity": rng.randint(1, 3),
                                   "price": round(meta["price"] * rng.uniform(0.9, 1.1), 2),
                                   "store": rng.choice(STORES)})
                # Cadence jitter
                day += max(1.0, rng.gauss(cadence, cadence * 0.2))

        # Occasional rejections of products the household never buys
        for product_id in rng.sample(product_ids, k=max(1, int(num_products * DEFAULT_REJECTION_RATE))):
            if product_id in staples:
                continue
            meta = catalog[product_id]
            events.append({
                "user_id": rng.choice(members),
                "household_id": household_id,
                "product_id": product_id,
                "action": "rejected",
                "timestamp": start_date + timedelta(days=rng.uniform(0, days_back)),
                "quantity": 1,
                "price": None,
                "store": None,
                "name": meta["name"],
                "category": meta["category"],
            })

    df = pd.DataFrame(events)
    df = df.sort_values("timestamp").reset_index(drop=True)
    return df


def main() -> None:
    """Generate default data and save it to data/fake_interactions.csv."""
    print(
        f"Generating interactions for {DEFAULT_NUM_HOUSEHOLDS} households, "
        f"{DEFAULT_NUM_PRODUCTS} products..."
    )

    try:
        df = generate_fake_interactions()
    except ValueError as e:
        print(f"Error generating data: {e}")
        return

    data_dir = Path(__file__).parent.parent / "data"
    data_dir.mkdir(exist_ok=True)

    output_path = data_dir / "fake_interactions.csv"
    df.to_csv(output_path, index=False)

    print(f"\nData generated successfully!")
    print(f"Saved to: {output_path}")
    print(f"\nData preview:")
    print(df.head(10))
    print(f"\nData summary:")
    print(f"  Total events: {len(df)}")
    print(f"  Events by action: {df['action'].value_counts().to_dict()}")
    print(f"  Unique households: {df['household_id'].nunique()}")
    print(f"  Unique products: {df['product_id'].nunique()}")
    print(f"  Date range: {df['timestamp'].min()} to {df['timestamp'].max()}")


if __name__ == "__main__":
    main()
