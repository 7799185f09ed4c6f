# app/schemas/cart.py
from sqlmodel import Field, SQLModel


def make_cart_key(
    product_id: int | str,
    selected_hand: str | None = None,
    selected_size: str | None = None,
    selected_color: str | None = None,
) -> str:
    """
    Composite key for a cart line: product plus every selected option.

    Missing options are spelled "none" so "1-none-M-none" and
    "1-left-M-none" never collide.
    """
    return "-".join(
        [
            str(product_id),
            selected_hand or "none",
            selected_size or "none",
            selected_color or "none",
        ]
    )


class CartItem(SQLModel):
    """
    One line in the cart.

    Two lines with the same cart_key are always merged.
    """

    id: int | str
    slug: str | None = None
    name: str
    price: float = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    image: str | None = None
    selected_hand: str | None = None
    selected_size: str | None = None
    selected_color: str | None = None
    cart_key: str | None = None

    def key(self) -> str:
        return self.cart_key or make_cart_key(
            self.id, self.selected_hand, self.selected_size, self.selected_color
        )


class CartState(SQLModel):
    items: list[CartItem] = Field(default_factory=list)

    @property
    def total(self) -> float:
        return sum(item.price * item.quantity for item in self.items)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


# ---- actions ----


class AddItem(SQLModel):
    item: CartItem


class RemoveItem(SQLModel):
    cart_key: str


class UpdateQuantity(SQLModel):
    cart_key: str
    quantity: int


class ClearCart(SQLModel):
    pass


class LoadCart(SQLModel):
    items: list[CartItem]


class SyncFromStorage(SQLModel):
    items: list[CartItem]


CartAction = AddItem | RemoveItem | UpdateQuantity | ClearCart | LoadCart | SyncFromStorage
