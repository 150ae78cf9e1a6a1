"""Cart state machine.

The cart is an immutable ``CartState`` value advanced by ``cart_reducer``.
Every action rebuilds the whole state and re-derives each line total from the
item's unit components, so ``subtotal`` can never drift from the items.
``CartStore`` holds the current state for a single browser session.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Callable, Literal, Union

from src.services.pricing import as_money, charge_amount, format_price, tax_amount

AddOnKind = Literal["topping", "side", "beverage"]

ZERO = Decimal("0")


@dataclass(frozen=True)
class AddOn:
    """A selected customization (topping, side or beverage)."""

    ref: str
    name: str
    unit_price: Decimal
    kind: AddOnKind = "topping"


@dataclass(frozen=True)
class CartItem:
    """A line in the cart.

    ``computed_total`` is owned by the reducer; whatever value an item is
    dispatched with is replaced by ``(unit_base_price + add-ons) * quantity``.
    """

    id: str
    product_ref: str
    product_name: str
    unit_base_price: Decimal
    quantity: int = 1
    add_ons: tuple[AddOn, ...] = ()
    special_instructions: str | None = None
    computed_total: Decimal = ZERO

    @property
    def unit_price(self) -> Decimal:
        """Base price plus every currently selected add-on."""
        return as_money(self.unit_base_price) + sum(
            (as_money(add_on.unit_price) for add_on in self.add_ons), ZERO
        )


@dataclass(frozen=True)
class CartState:
    """Ordered cart lines and their tax-exclusive subtotal."""

    items: tuple[CartItem, ...] = ()
    subtotal: Decimal = ZERO

    @property
    def tax(self) -> Decimal:
        return tax_amount(self.subtotal)

    @property
    def total(self) -> Decimal:
        """Tax-inclusive amount that checkout will charge."""
        return charge_amount(self.subtotal)

    @property
    def display_total(self) -> str:
        return format_price(self.subtotal)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


@dataclass(frozen=True)
class AddItem:
    item: CartItem
    type: str = field(default="ADD_ITEM", init=False)


@dataclass(frozen=True)
class RemoveItem:
    item_id: str
    type: str = field(default="REMOVE_ITEM", init=False)


@dataclass(frozen=True)
class UpdateQuantity:
    item_id: str
    quantity: int
    type: str = field(default="UPDATE_QUANTITY", init=False)


@dataclass(frozen=True)
class ReplaceItem:
    """Swap an item (e.g. edited customizations) keeping its position."""

    item: CartItem
    type: str = field(default="REPLACE_ITEM", init=False)


@dataclass(frozen=True)
class ClearCart:
    type: str = field(default="CLEAR", init=False)


CartAction = Union[AddItem, RemoveItem, UpdateQuantity, ReplaceItem, ClearCart]


def price_item(item: CartItem, quantity: int | None = None) -> CartItem:
    """Return a copy of ``item`` with its line total re-derived."""
    quantity = item.quantity if quantity is None else quantity
    return replace(item, quantity=quantity, computed_total=item.unit_price * quantity)


def _build(items: list[CartItem]) -> CartState:
    subtotal = sum((item.computed_total for item in items), ZERO)
    return CartState(items=tuple(items), subtotal=subtotal)


def cart_reducer(state: CartState, action: CartAction) -> CartState:
    """Advance the cart by one action. Never raises; unknown ids are no-ops."""
    if isinstance(action, AddItem):
        if action.item.quantity < 1:
            return state
        return _build([*state.items, price_item(action.item)])

    if isinstance(action, RemoveItem):
        return _build([item for item in state.items if item.id != action.item_id])

    if isinstance(action, UpdateQuantity):
        if action.quantity <= 0:
            return cart_reducer(state, RemoveItem(action.item_id))
        return _build(
            [
                price_item(item, action.quantity) if item.id == action.item_id else item
                for item in state.items
            ]
        )

    if isinstance(action, ReplaceItem):
        if action.item.quantity < 1:
            return cart_reducer(state, RemoveItem(action.item.id))
        return _build(
            [
                price_item(action.item) if item.id == action.item.id else item
                for item in state.items
            ]
        )

    if isinstance(action, ClearCart):
        return CartState()

    return state


class CartStore:
    """Holds the current cart state and applies actions through the reducer."""

    def __init__(self, initial: CartState | None = None) -> None:
        self._state = initial or CartState()
        self._listeners: list[Callable[[CartState], None]] = []

    @property
    def state(self) -> CartState:
        return self._state

    def subscribe(self, listener: Callable[[CartState], None]) -> Callable[[], None]:
        """Register a listener called after every dispatch. Returns an unsubscribe callable."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def dispatch(self, action: CartAction) -> CartState:
        self._state = cart_reducer(self._state, action)
        for listener in list(self._listeners):
            listener(self._state)
        return self._state

    def add_item(self, item: CartItem) -> CartState:
        return self.dispatch(AddItem(item))

    def remove_item(self, item_id: str) -> CartState:
        return self.dispatch(RemoveItem(item_id))

    def update_quantity(self, item_id: str, quantity: int) -> CartState:
        return self.dispatch(UpdateQuantity(item_id, quantity))

    def replace_item(self, item: CartItem) -> CartState:
        return self.dispatch(ReplaceItem(item))

    def clear(self) -> CartState:
        return self.dispatch(ClearCart())


def to_checkout_items(state: CartState) -> list[dict[str, Any]]:
    """Build the checkout ``items`` payload from the cart.

    ``price`` is the line total, which the server re-sums to check the amount.
    """
    payload = []
    for item in state.items:
        entry: dict[str, Any] = {
            "mealId": item.product_ref,
            "mealName": item.product_name,
            "quantity": item.quantity,
            "price": item.computed_total,
        }
        for kind, key in (("topping", "toppings"), ("side", "sides"), ("beverage", "beverages")):
            selected = [
                {"id": add_on.ref, "name": add_on.name, "price": add_on.unit_price}
                for add_on in item.add_ons
                if add_on.kind == kind
            ]
            if selected:
                entry[key] = selected
        if item.special_instructions:
            entry["specialInstructions"] = item.special_instructions
        payload.append(entry)
    return payload
