"""Utility functions for the scoring engine.

This module provides helper functions for time arithmetic, record store
snapshots, and importing purchase history from CSV files.
"""

import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import joblib
import pandas as pd

from smartbuy.exceptions import StoreUnavailableError
from smartbuy.recommender.store import Product, PurchaseRecord, RecordStore

# Configure module logger
logger = logging.getLogger(__name__)

# Snapshot filenames
STORE_SNAPSHOT_FILENAME = "store_snapshot.joblib"
WEIGHTS_FILENAME = "weights.joblib"

SECONDS_PER_DAY = 86400


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_between(later: datetime, earlier: datetime) -> int:
    """Whole days elapsed from ``earlier`` to ``later`` (floored)."""
    return math.floor((later - earlier).total_seconds() / SECONDS_PER_DAY)


def save_store_snapshot(
    store: RecordStore,
    output_dir: str,
    filename: str = STORE_SNAPSHOT_FILENAME,
) -> Path:
    """Save the record store to disk.

    Creates the output directory if it doesn't exist.

    Args:
        store: Record store to persist.
        output_dir: Directory path where the snapshot will be saved.
        filename: Snapshot filename (default: "store_snapshot.joblib").

    Returns:
        Path of the written snapshot.

    Raises:
        StoreUnavailableError: If the snapshot cannot be written.
    """
    output_path = Path(output_dir)
    snapshot_path = output_path / filename

    try:
        output_path.mkdir(parents=True, exist_ok=True)
        joblib.dump(store.to_snapshot(), snapshot_path)
    except OSError as e:
        logger.error(f"Failed to save store snapshot: {e}", exc_info=True)
        raise StoreUnavailableError(str(snapshot_path), e) from e

    logger.info(f"Saved store snapshot to {snapshot_path}")
    return snapshot_path


def load_store_snapshot(
    model_dir: str,
    filename: str = STORE_SNAPSHOT_FILENAME,
) -> RecordStore:
    """Load a record store snapshot from disk.

    Args:
        model_dir: Directory path where the snapshot is stored.
        filename: Snapshot filename (default: "store_snapshot.joblib").

    Returns:
        The restored RecordStore.

    Raises:
        FileNotFoundError: If the snapshot file is missing.
        StoreUnavailableError: If the snapshot exists but cannot be read.
    """
    snapshot_path = Path(model_dir) / filename
    if not snapshot_path.exists():
        raise FileNotFoundError(f"Store snapshot not found: {snapshot_path}")

    logger.info(f"Loading store snapshot from {snapshot_path}")
    try:
        snapshot = joblib.load(snapshot_path)
    except Exception as e:
        logger.error(f"Failed to load store snapshot: {e}", exc_info=True)
        raise StoreUnavailableError(str(snapshot_path), e) from e

    return RecordStore.from_snapshot(snapshot)


def check_snapshot_exists(model_dir: str, filename: str = STORE_SNAPSHOT_FILENAME) -> bool:
    """Check if a store snapshot exists in ``model_dir``."""
    return (Path(model_dir) / filename).exists()


def load_purchases_csv(
    csv_path: str,
    store: Optional[RecordStore] = None,
    user_col: str = "user_id",
    item_col: str = "product_id",
    time_col: str = "timestamp",
) -> Tuple[RecordStore, int]:
    """Import purchase history from a CSV file into a record store.

    Required columns are user, product and timestamp. Optional columns
    ``household_id``, ``quantity``, ``price``, ``category`` and ``name`` are
    used when present; product metadata from the last row per product wins.

    Args:
        csv_path: Path to CSV file containing purchase data.
        store: Store to import into. A new one is created when None.
        user_col: Name of the column containing user identifiers.
        item_col: Name of the column containing product identifiers.
        time_col: Name of the column containing purchase timestamps.

    Returns:
        A tuple of the populated store and the number of imported purchases.

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If CSV is missing required columns or is empty.

    Example:
        >>> store, n = load_purchases_csv("data/fake_purchases.csv")
        >>> print(f"Imported {n} purchases")
    """
    csv_file = Path(csv_path)
    if not csv_file.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    logger.info(f"Loading CSV from {csv_path}")
    df = pd.read_csv(csv_path, dtype={user_col: str, item_col: str})

    required_columns = {user_col, item_col, time_col}
    if not required_columns.issubset(df.columns):
        missing = required_columns - set(df.columns)
        raise ValueError(f"CSV missing required columns: {missing}")

    if df.empty:
        raise ValueError("Cannot import purchases from empty CSV")

    df[time_col] = pd.to_datetime(df[time_col], utc=True)
    if "household_id" in df.columns:
        df["household_id"] = df["household_id"].astype("string")
    store = store if store is not None else RecordStore()

    for row in df.itertuples(index=False):
        row = row._asdict()
        household = row.get("household_id")
        quantity = row.get("quantity", 1)
        store.add_purchase(
            PurchaseRecord(
                user_id=str(row[user_col]),
                product_id=str(row[item_col]),
                bought_at=row[time_col].to_pydatetime(),
                household_id=None if pd.isna(household) else str(household),
                quantity=1 if pd.isna(quantity) else int(quantity),
            )
        )

    metadata_columns = [c for c in ("name", "price", "category") if c in df.columns]
    if metadata_columns:
        catalog = df.groupby(item_col)[metadata_columns].last()
        for product_id, meta in catalog.iterrows():
            store.add_product(
                Product(
                    product_id=str(product_id),
                    name=str(meta.get("name", "")) if not pd.isna(meta.get("name", "")) else "",
                    price=None if pd.isna(meta.get("price")) else float(meta.get("price")),
                    category=None if pd.isna(meta.get("category")) else str(meta.get("category")),
                )
            )

    logger.info(f"Imported {len(df)} purchase records")
    logger.info(f"Unique users: {df[user_col].nunique()}")
    logger.info(f"Unique products: {df[item_col].nunique()}")

    return store, len(df)


INTERACTION_COLUMNS = ("user_id", "product_id", "action", "timestamp")


def load_interactions_csv(csv_path: str) -> pd.DataFrame:
    """Read an interaction event log, oldest event first.

    Required columns are ``user_id``, ``product_id``, ``action`` and
    ``timestamp``; ``household_id``, ``quantity``, ``price``, ``store`` and
    ``list_id`` are optional. Timestamps are parsed as UTC.

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If required columns are missing.
    """
    if not Path(csv_path).exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    df = pd.read_csv(
        csv_path,
        dtype={"user_id": str, "product_id": str, "household_id": str, "list_id": str},
    )
    missing = set(INTERACTION_COLUMNS) - set(df.columns)
    if missing:
        raise ValueError(f"CSV missing required columns: {missing}")

    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True, format="mixed")
    df = df.sort_values("timestamp", kind="stable").reset_index(drop=True)
    logger.info(f"Loaded {len(df)} interaction events from {csv_path}")
    return df
