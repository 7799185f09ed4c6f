# tests/test_cart_store.py
import json
import random

from app.schemas.cart import (
    AddItem,
    CartItem,
    CartState,
    RemoveItem,
    UpdateQuantity,
    make_cart_key,
)
from app.services.cart_store import CartStore, SharedStorage, cart_reducer


def item(product_id=1, quantity=1, price=10.0, size="M", hand=None, color=None):
    return CartItem(
        id=product_id,
        name=f"Product {product_id}",
        price=price,
        quantity=quantity,
        selected_size=size,
        selected_hand=hand,
        selected_color=color,
    )


def test_same_options_merge_quantities():
    state = cart_reducer(CartState(), AddItem(item=item(quantity=2)))
    state = cart_reducer(state, AddItem(item=item(quantity=3)))

    assert len(state.items) == 1
    assert state.items[0].quantity == 5


def test_different_options_stay_separate():
    state = cart_reducer(CartState(), AddItem(item=item(size="M")))
    state = cart_reducer(state, AddItem(item=item(size="L")))
    state = cart_reducer(state, AddItem(item=item(size="M", hand="left")))

    assert [i.cart_key for i in state.items] == ["1-none-M-none", "1-none-L-none", "1-left-M-none"]


def test_sequential_adds_scenario():
    state = cart_reducer(CartState(), AddItem(item=item(quantity=1)))
    state = cart_reducer(state, AddItem(item=item(quantity=2)))

    assert [(i.id, i.selected_size, i.quantity, i.price) for i in state.items] == [(1, "M", 3, 10.0)]
    assert state.total == 30


def test_update_quantity_floors_at_one():
    state = cart_reducer(CartState(), AddItem(item=item(quantity=4)))
    key = state.items[0].cart_key

    for requested in (0, -3):
        assert cart_reducer(state, UpdateQuantity(cart_key=key, quantity=requested)).items[0].quantity == 1


def test_reducer_does_not_mutate_previous_state():
    before = cart_reducer(CartState(), AddItem(item=item(quantity=1)))
    after = cart_reducer(before, AddItem(item=item(quantity=1)))

    assert before.items[0].quantity == 1
    assert after.items[0].quantity == 2


def test_total_matches_items_after_random_actions():
    rng = random.Random(7)
    state = CartState()
    for _ in range(200):
        roll = rng.random()
        if roll < 0.5 or not state.items:
            state = cart_reducer(
                state,
                AddItem(item=item(
                    product_id=rng.randint(1, 4),
                    quantity=rng.randint(1, 3),
                    price=rng.choice([2.5, 10.0, 12.75]),
                    size=rng.choice(["S", "M", None]),
                )),
            )
        elif roll < 0.75:
            target = rng.choice(state.items).cart_key
            state = cart_reducer(state, UpdateQuantity(cart_key=target, quantity=rng.randint(-2, 6)))
        else:
            target = rng.choice(state.items).cart_key
            state = cart_reducer(state, RemoveItem(cart_key=target))

        assert state.total == sum(i.price * i.quantity for i in state.items)
        assert all(i.quantity >= 1 for i in state.items)
        assert len({i.cart_key for i in state.items}) == len(state.items)


def test_store_persists_every_change():
    storage = SharedStorage()
    store = CartStore(storage)

    store.add_item(item(quantity=2))
    saved = json.loads(storage.get_item("cart"))
    assert saved[0]["quantity"] == 2

    store.clear()
    assert json.loads(storage.get_item("cart")) == []
    assert store.total == 0


def test_load_backfills_missing_cart_keys():
    storage = SharedStorage()
    storage.set_item(
        "cart",
        json.dumps([{"id": 7, "name": "Spatula", "price": 5, "quantity": 2, "selected_color": "red"}]),
    )

    store = CartStore(storage)
    state = store.load()

    assert state.items[0].cart_key == make_cart_key(7, None, None, "red") == "7-none-none-red"
    assert json.loads(storage.get_item("cart"))[0]["cart_key"] == "7-none-none-red"


def test_unreadable_storage_starts_empty():
    storage = SharedStorage()
    storage.set_item("cart", "{not json")

    assert CartStore(storage).load().items == []


def test_other_tab_write_replaces_state():
    storage = SharedStorage()
    tab_a = CartStore(storage)
    tab_b = CartStore(storage)

    tab_a.add_item(item(product_id=1, quantity=2))
    assert tab_b.state.items[0].quantity == 2

    tab_b.add_item(item(product_id=2, quantity=1, price=4.0))
    assert [i.id for i in tab_a.state.items] == [1, 2]
    assert tab_a.total == 24.0

    tab_a.clear()
    assert tab_b.state.items == []
    assert tab_b.item_count == 0
