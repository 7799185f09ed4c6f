# app/services/cart_store.py
import json
import logging
from collections.abc import Callable
from typing import Protocol

from pydantic import ValidationError

from app.schemas.cart import (
    AddItem,
    CartAction,
    CartItem,
    CartState,
    ClearCart,
    LoadCart,
    RemoveItem,
    SyncFromStorage,
    UpdateQuantity,
    make_cart_key,
)

logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "cart"

StorageListener = Callable[[str, str | None], None]


def migrate_items(items: list[CartItem]) -> list[CartItem]:
    """Backfill cart_key on items persisted before keys existed."""
    return [
        item if item.cart_key else item.model_copy(update={"cart_key": item.key()})
        for item in items
    ]


def cart_reducer(state: CartState, action: CartAction) -> CartState:
    """
    Pure cart transition. Never mutates `state`.

    Rules:
      - AddItem merges into an existing line with the same cart_key
        (quantities summed), otherwise appends
      - UpdateQuantity clamps to a minimum of 1; use RemoveItem to delete
      - LoadCart / SyncFromStorage replace the items wholesale
    """
    if isinstance(action, AddItem):
        added = action.item
        key = make_cart_key(added.id, added.selected_hand, added.selected_size, added.selected_color)
        items = list(state.items)
        for index, existing in enumerate(items):
            if existing.key() == key:
                items[index] = existing.model_copy(
                    update={"quantity": existing.quantity + added.quantity}
                )
                break
        else:
            items.append(added.model_copy(update={"cart_key": key}))
        return CartState(items=items)

    if isinstance(action, RemoveItem):
        return CartState(items=[i for i in state.items if i.key() != action.cart_key])

    if isinstance(action, UpdateQuantity):
        quantity = max(1, action.quantity)
        return CartState(
            items=[
                i.model_copy(update={"quantity": quantity}) if i.key() == action.cart_key else i
                for i in state.items
            ]
        )

    if isinstance(action, ClearCart):
        return CartState()

    if isinstance(action, (LoadCart, SyncFromStorage)):
        return CartState(items=migrate_items(action.items))

    raise TypeError(f"Unknown cart action: {type(action).__name__}")


class CartStorage(Protocol):
    """Key/value store shared by every tab of one browser profile."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str, origin: object = None) -> None: ...

    def subscribe(self, owner: object, listener: StorageListener) -> None: ...


class SharedStorage:
    """
    In-process stand-in for browser local storage.

    A write notifies every subscriber except the one that made it,
    the way storage events reach only the other tabs.
    """

    def __init__(self):
        self._data: dict[str, str] = {}
        self._listeners: list[tuple[object, StorageListener]] = []

    def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    def set_item(self, key: str, value: str, origin: object = None) -> None:
        self._data[key] = value
        for owner, listener in list(self._listeners):
            if owner is not origin:
                listener(key, value)

    def subscribe(self, owner: object, listener: StorageListener) -> None:
        self._listeners.append((owner, listener))


def _decode(raw: str) -> list[CartItem]:
    return [CartItem.model_validate(entry) for entry in json.loads(raw)]


class CartStore:
    """
    One tab's cart: reducer state plus persistence.

    Every dispatch writes the full item list to storage. A write from
    another tab replaces this tab's state (last writer wins).
    """

    def __init__(self, storage: CartStorage, key: str = CART_STORAGE_KEY):
        self.storage = storage
        self.key = key
        self.state = CartState()
        storage.subscribe(self, self.on_storage_change)

    def _persist(self) -> None:
        payload = json.dumps([item.model_dump() for item in self.state.items])
        self.storage.set_item(self.key, payload, origin=self)

    def dispatch(self, action: CartAction) -> CartState:
        self.state = cart_reducer(self.state, action)
        self._persist()
        return self.state

    def load(self) -> CartState:
        """Restore from storage on first page load; bad data starts empty."""
        raw = self.storage.get_item(self.key)
        if raw is None:
            return self.state
        try:
            items = _decode(raw)
        except (ValueError, ValidationError):
            logger.warning("Discarding unreadable cart in storage key %r", self.key)
            return self.state
        return self.dispatch(LoadCart(items=items))

    def on_storage_change(self, key: str, new_value: str | None) -> None:
        if key != self.key:
            return
        try:
            items = _decode(new_value) if new_value else []
        except (ValueError, ValidationError):
            logger.warning("Ignoring unreadable cart update from another tab")
            return
        # no write back: the other tab already persisted this value
        self.state = cart_reducer(self.state, SyncFromStorage(items=items))

    # ---- convenience operations ----

    def add_item(self, item: CartItem) -> CartState:
        return self.dispatch(AddItem(item=item))

    def remove_item(self, cart_key: str) -> CartState:
        return self.dispatch(RemoveItem(cart_key=cart_key))

    def update_quantity(self, cart_key: str, quantity: int) -> CartState:
        return self.dispatch(UpdateQuantity(cart_key=cart_key, quantity=quantity))

    def clear(self) -> CartState:
        return self.dispatch(ClearCart())

    @property
    def total(self) -> float:
        return self.state.total

    @property
    def item_count(self) -> int:
        return self.state.item_count
