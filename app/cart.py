"""
Shopping Cart Store

Client-side cart state: one entry per product with a positive quantity
and an optional note. The store owns its state and writes the whole cart
to a local-storage-like backend after every mutation, then notifies
subscribers so every UI surface (header badge, sidebar, checkout) shows
the same cart.

The cart never records prices. Totals are computed by joining against the
current catalog prices, so a price change between add-to-cart and checkout
shows up at checkout.

Usage:
    from app.cart import CartStore, JsonFileCartStorage

    cart = CartStore(JsonFileCartStorage("~/.storefront/cart.json"))
    unsubscribe = cart.subscribe(lambda items: print(len(items)))
    cart.add("product-id")
    cart.total_item_count()  # 1

Version: 1.0.0
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from decimal import Decimal
from pathlib import Path
from typing import Callable, Mapping, Optional, Union

logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "cart"


@dataclass(frozen=True)
class CartItem:
    """One cart line. ``quantity`` is always >= 1 while stored."""
    product_id: str
    quantity: int
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        """Serialized shape, shared with the browser client."""
        data = {"productId": self.product_id, "quantity": self.quantity}
        if self.notes is not None:
            data["notes"] = self.notes
        return data


CartListener = Callable[[tuple[CartItem, ...]], None]


# =============================================================================
# PERSISTENCE PORT
# =============================================================================

class CartStorage(ABC):
    """Minimal key/value interface modelled on the browser's localStorage."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        pass


class InMemoryCartStorage(CartStorage):
    """Process-local storage; used by tests and short-lived sessions."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileCartStorage(CartStorage):
    """
    Durable storage backed by a single JSON document on disk.

    The file holds a ``{key: value}`` object; it is rewritten on every
    ``set_item`` so a crash never leaves a half-written cart behind
    (write to a temp file, then replace).
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable cart storage {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data), encoding="utf-8")
        tmp_path.replace(self.path)

    def get_item(self, key: str) -> Optional[str]:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove_item(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)


# =============================================================================
# CART STORE
# =============================================================================

class CartStore:
    """
    Owned cart state with write-through persistence and change notification.

    Attributes:
        storage: Persistence backend (local-storage-like)
        key: Storage key holding the serialized cart array
    """

    def __init__(self, storage: CartStorage, key: str = CART_STORAGE_KEY):
        self.storage = storage
        self.key = key
        self._items: list[CartItem] = self._load()
        self._listeners: list[CartListener] = []

    # --- Persistence ---------------------------------------------------------

    def _load(self) -> list[CartItem]:
        """Read the saved cart, dropping entries that break the cart rules."""
        raw = self.storage.get_item(self.key)
        if not raw:
            return []

        try:
            entries = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding malformed cart data under '{self.key}'")
            return []
        if not isinstance(entries, list):
            logger.warning(f"Discarding non-list cart data under '{self.key}'")
            return []

        items: dict[str, CartItem] = {}
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            product_id = entry.get("productId")
            quantity = entry.get("quantity")
            notes = entry.get("notes")
            if not isinstance(product_id, str) or not product_id:
                continue
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
                logger.debug(f"Dropping cart entry {product_id} with quantity {quantity!r}")
                continue
            if notes is not None and not isinstance(notes, str):
                notes = None

            existing = items.get(product_id)
            if existing:
                items[product_id] = replace(existing, quantity=existing.quantity + quantity)
            else:
                items[product_id] = CartItem(product_id, quantity, notes)

        return list(items.values())

    def _commit(self, items: list[CartItem]) -> None:
        """Replace the cart, persist the whole snapshot, then notify."""
        self._items = items
        payload = json.dumps([item.to_dict() for item in items])
        self.storage.set_item(self.key, payload)

        snapshot = self.items
        for listener in list(self._listeners):
            listener(snapshot)

    def _find(self, product_id: str) -> Optional[CartItem]:
        for item in self._items:
            if item.product_id == product_id:
                return item
        return None

    # --- Observers -----------------------------------------------------------

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """
        Register a callback receiving the cart snapshot after each change.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # --- Mutations -----------------------------------------------------------

    def add(self, product_id: str) -> None:
        """Add one unit, creating the entry at quantity 1 if absent."""
        existing = self._find(product_id)
        if existing:
            items = [
                replace(item, quantity=item.quantity + 1) if item.product_id == product_id else item
                for item in self._items
            ]
        else:
            items = [*self._items, CartItem(product_id, 1)]
        self._commit(items)

    def remove(self, product_id: str) -> None:
        """Remove one unit; the entry disappears when its last unit goes."""
        existing = self._find(product_id)
        if not existing:
            return

        if existing.quantity == 1:
            items = [item for item in self._items if item.product_id != product_id]
        else:
            items = [
                replace(item, quantity=item.quantity - 1) if item.product_id == product_id else item
                for item in self._items
            ]
        self._commit(items)

    def remove_completely(self, product_id: str) -> None:
        """Drop the entry whatever its quantity."""
        self._commit([item for item in self._items if item.product_id != product_id])

    def set_note(self, product_id: str, note: Optional[str]) -> None:
        """Attach a note (e.g. 'no onions') to an existing entry."""
        if not self._find(product_id):
            return
        note = (note or "").strip() or None
        self._commit([
            replace(item, notes=note) if item.product_id == product_id else item
            for item in self._items
        ])

    def clear(self) -> None:
        self._commit([])

    # --- Queries -------------------------------------------------------------

    @property
    def items(self) -> tuple[CartItem, ...]:
        return tuple(self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items

    def quantity_of(self, product_id: str) -> int:
        item = self._find(product_id)
        return item.quantity if item else 0

    def total_item_count(self) -> int:
        return sum(item.quantity for item in self._items)

    def checkout_lines(self, prices: Mapping[str, Decimal]) -> list[dict]:
        """
        Cart lines that can be priced against the current catalog.

        Products missing from ``prices`` (removed or deactivated) are left
        out, the same way the storefront hides them at checkout.
        """
        return [
            {
                "product_id": item.product_id,
                "quantity": item.quantity,
                "notes": item.notes,
                "unit_price": Decimal(prices[item.product_id]),
            }
            for item in self._items
            if item.product_id in prices
        ]

    def subtotal(self, prices: Mapping[str, Decimal]) -> Decimal:
        """Cart value at the given (current) catalog prices."""
        total = sum(
            (line["unit_price"] * line["quantity"] for line in self.checkout_lines(prices)),
            Decimal("0"),
        )
        return total.quantize(Decimal("0.01"))
