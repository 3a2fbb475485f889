"""Shared record layer for the scoring engine.

Holds the records the engine reads (products, favorites, purchases,
rejections) and the records it owns (training examples, household frequency
records). Everything lives in memory behind locks; ``utils`` snapshots the
store to disk with joblib.
"""

import copy
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

# Configure module logger
logger = logging.getLogger(__name__)

FrequencyKey = Tuple[str, str]
RejectionKey = Tuple[Optional[str], str, str]


@dataclass
class Product:
    """Catalog entry. Price and category are optional."""

    product_id: str
    name: str = ""
    price: Optional[float] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class PurchaseRecord:
    """One purchase by a user, optionally on behalf of a household."""

    user_id: str
    product_id: str
    bought_at: datetime
    household_id: Optional[str] = None
    quantity: int = 1


@dataclass(frozen=True)
class Rejection:
    """A suggestion explicitly rejected by a user."""

    product_id: str
    rejected_by: str
    created_at: datetime
    household_id: Optional[str] = None

    @property
    def key(self) -> RejectionKey:
        return (self.household_id, self.product_id, self.rejected_by)


@dataclass(frozen=True)
class TrainingExample:
    """Labeled feature snapshot used to fit the purchase model.

    Never mutated. The only deletion path is undoing a rejection.
    """

    user_id: str
    product_id: str
    features: Dict[str, float]
    label: int
    timestamp: datetime
    list_id: Optional[str] = None
    household_id: Optional[str] = None
    example_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class RecordStore:
    """Thread-safe in-memory record store.

    Collections share one re-entrant lock. Household frequency records are
    additionally guarded by a lock per (household, product) key so that
    concurrent events for the same key are applied one after another.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._products: Dict[str, Product] = {}
        self._favorites: Set[Tuple[str, str]] = set()
        self._purchases: List[PurchaseRecord] = []
        self._rejections: Dict[RejectionKey, Rejection] = {}
        self._examples: Dict[str, TrainingExample] = {}
        self._frequency: Dict[FrequencyKey, Any] = {}
        self._key_locks: Dict[FrequencyKey, threading.Lock] = {}

    # ----- products -----

    def add_product(self, product: Product) -> None:
        with self._lock:
            self._products[str(product.product_id)] = product

    def get_product(self, product_id: str) -> Optional[Product]:
        with self._lock:
            return self._products.get(str(product_id))

    def get_products(self, product_ids: Iterable[str]) -> Dict[str, Product]:
        """Return the known products among ``product_ids``."""
        with self._lock:
            return {
                str(pid): self._products[str(pid)]
                for pid in product_ids
                if str(pid) in self._products
            }

    def list_product_ids(self) -> List[str]:
        with self._lock:
            return list(self._products.keys())

    # ----- favorites -----

    def add_favorite(self, user_id: str, product_id: str) -> None:
        with self._lock:
            self._favorites.add((str(user_id), str(product_id)))

    def remove_favorite(self, user_id: str, product_id: str) -> bool:
        with self._lock:
            key = (str(user_id), str(product_id))
            if key in self._favorites:
                self._favorites.remove(key)
                return True
            return False

    def favorites_for(self, user_id: str, product_ids: Iterable[str]) -> Set[str]:
        """Return the subset of ``product_ids`` the user has favorited."""
        with self._lock:
            return {
                str(pid)
                for pid in product_ids
                if (str(user_id), str(pid)) in self._favorites
            }

    # ----- purchases -----

    def add_purchase(self, purchase: PurchaseRecord) -> None:
        with self._lock:
            self._purchases.append(purchase)

    def purchases_for(
        self,
        product_ids: Iterable[str],
        user_id: Optional[str] = None,
        household_id: Optional[str] = None,
    ) -> List[PurchaseRecord]:
        """Purchases of the given products made by the user or the household."""
        wanted = {str(pid) for pid in product_ids}
        with self._lock:
            return [
                p
                for p in self._purchases
                if p.product_id in wanted
                and (
                    (user_id is not None and p.user_id == str(user_id))
                    or (household_id is not None and p.household_id == str(household_id))
                )
            ]

    def count_purchases(self) -> int:
        with self._lock:
            return len(self._purchases)

    # ----- rejections -----

    def add_rejection(self, rejection: Rejection) -> Tuple[Rejection, bool]:
        """Store a rejection unless one exists for the same key.

        Returns:
            The stored rejection and whether it was newly created.
        """
        with self._lock:
            existing = self._rejections.get(rejection.key)
            if existing is not None:
                return existing, False
            self._rejections[rejection.key] = rejection
            return rejection, True

    def remove_rejection(
        self,
        product_id: str,
        rejected_by: str,
        household_id: Optional[str] = None,
    ) -> Optional[Rejection]:
        """Remove a rejection.

        Without ``household_id`` the most recent rejection of the product by
        the user is removed, whatever household it was made in.
        """
        with self._lock:
            if household_id is not None:
                key = (str(household_id), str(product_id), str(rejected_by))
                return self._rejections.pop(key, None)
            matches = [
                r
                for r in self._rejections.values()
                if r.product_id == str(product_id) and r.rejected_by == str(rejected_by)
            ]
            if not matches:
                return None
            latest = max(matches, key=lambda r: r.created_at)
            return self._rejections.pop(latest.key)

    def rejections_for(
        self,
        product_ids: Iterable[str],
        user_id: Optional[str] = None,
        household_id: Optional[str] = None,
    ) -> List[Rejection]:
        """Rejections of the given products by the user or inside the household."""
        wanted = {str(pid) for pid in product_ids}
        with self._lock:
            return [
                r
                for r in self._rejections.values()
                if r.product_id in wanted
                and (
                    (user_id is not None and r.rejected_by == str(user_id))
                    or (household_id is not None and r.household_id == str(household_id))
                )
            ]

    def list_rejections(self, user_id: str, household_id: Optional[str] = None) -> List[Rejection]:
        with self._lock:
            found = [
                r
                for r in self._rejections.values()
                if r.rejected_by == str(user_id)
                and (household_id is None or r.household_id == str(household_id))
            ]
        return sorted(found, key=lambda r: r.created_at, reverse=True)

    # ----- training examples -----

    def add_training_example(self, example: TrainingExample) -> None:
        with self._lock:
            self._examples[example.example_id] = example

    def list_training_examples(self) -> List[TrainingExample]:
        with self._lock:
            return list(self._examples.values())

    def delete_training_example(self, example_id: str) -> bool:
        with self._lock:
            return self._examples.pop(example_id, None) is not None

    def find_training_examples(
        self, predicate: Callable[[TrainingExample], bool]
    ) -> List[TrainingExample]:
        with self._lock:
            return [e for e in self._examples.values() if predicate(e)]

    # ----- household frequency records -----

    def _key_lock(self, key: FrequencyKey) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def get_frequency(self, household_id: str, product_id: str) -> Optional[Any]:
        with self._lock:
            return self._frequency.get((str(household_id), str(product_id)))

    def frequency_records_for(self, household_id: str) -> List[Any]:
        with self._lock:
            return [
                record
                for (hid, _), record in self._frequency.items()
                if hid == str(household_id)
            ]

    def count_similar_households(
        self, product_id: str, exclude_household: str, min_added: int
    ) -> int:
        """Count other households whose record for the product has enough adds."""
        with self._lock:
            return sum(
                1
                for (hid, pid), record in self._frequency.items()
                if pid == str(product_id)
                and hid != str(exclude_household)
                and record.total_added >= min_added
            )

    def upsert_frequency(
        self,
        household_id: str,
        product_id: str,
        factory: Callable[[], Any],
        mutate: Callable[[Any], None],
    ) -> Any:
        """Apply ``mutate`` to the record for a key under that key's lock.

        The mutation runs on a copy; the copy replaces the stored record only
        when ``mutate`` returns without raising.
        """
        key = (str(household_id), str(product_id))
        with self._key_lock(key):
            with self._lock:
                current = self._frequency.get(key)
            working = copy.deepcopy(current) if current is not None else factory()
            mutate(working)
            with self._lock:
                self._frequency[key] = working
            return working

    # ----- snapshots -----

    def to_snapshot(self) -> Dict[str, Any]:
        """Plain-data view of the store, suitable for joblib."""
        with self._lock:
            return {
                "products": dict(self._products),
                "favorites": set(self._favorites),
                "purchases": list(self._purchases),
                "rejections": dict(self._rejections),
                "examples": dict(self._examples),
                "frequency": copy.deepcopy(self._frequency),
            }

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, Any]) -> "RecordStore":
        store = cls()
        store._products = dict(snapshot.get("products", {}))
        store._favorites = set(snapshot.get("favorites", set()))
        store._purchases = list(snapshot.get("purchases", []))
        store._rejections = dict(snapshot.get("rejections", {}))
        store._examples = dict(snapshot.get("examples", {}))
        store._frequency = dict(snapshot.get("frequency", {}))
        logger.info(
            "Restored record store",
            extra={
                "num_products": len(store._products),
                "num_purchases": len(store._purchases),
                "num_examples": len(store._examples),
                "num_frequency_records": len(store._frequency),
            },
        )
        return store
