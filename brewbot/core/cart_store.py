"""In-memory shopping cart with merge-on-add semantics.

One CartStore lives for the whole process and is shared by the cart tools.
Writes build a new tuple of lines and swap it in with a single assignment,
so snapshot() never observes a half-applied add.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

import structlog

from brewbot.core.catalog import (
    Catalog,
    MenuItem,
    MenuItemNotFound,
    SweetnessVariant,
    TemperatureVariant,
)

logger = structlog.get_logger(__name__)


class CartError(str, Enum):
    """Reasons add_line can reject a request, in validation order."""
    UNKNOWN_ITEM = "unknown_item"
    INVALID_TEMPERATURE = "invalid_temperature"
    INVALID_SWEETNESS = "invalid_sweetness"
    UNSUPPORTED_TEMPERATURE = "unsupported_temperature"
    UNSUPPORTED_SWEETNESS = "unsupported_sweetness"
    INVALID_QUANTITY = "invalid_quantity"


@dataclass(frozen=True)
class CartLine:
    """One cart entry, unique per (item, temperature, sweetness)."""
    item: MenuItem
    temperature: TemperatureVariant
    sweetness: SweetnessVariant
    quantity: int

    @property
    def key(self) -> tuple[str, TemperatureVariant, SweetnessVariant]:
        return (self.item.id, self.temperature, self.sweetness)

    @property
    def line_total(self) -> Decimal:
        return self.item.price * self.quantity


@dataclass(frozen=True)
class Cart:
    """Immutable cart snapshot; lines keep insertion order."""
    lines: tuple[CartLine, ...] = ()

    @property
    def grand_total(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0"))

    @property
    def line_count(self) -> int:
        return len(self.lines)

    @property
    def unit_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines


@dataclass
class AddLineResult:
    """Outcome of CartStore.add_line.

    Attributes:
        success: Whether the cart was updated.
        line: The resulting (post-merge) line on success.
        cart: Cart snapshot after the add on success.
        quantity_added: Quantity requested by this call.
        merged: True if an existing line absorbed the quantity.
        error: Rejection reason on failure.
        message: Human-readable description of the rejection.
    """
    success: bool
    line: CartLine | None = None
    cart: Cart = field(default_factory=Cart)
    quantity_added: int = 0
    merged: bool = False
    error: CartError | None = None
    message: str = ""


def _codes(values) -> str:
    return ", ".join(v.value for v in values)


class CartStore:
    """Owns the single Cart for this process."""

    def __init__(self, catalog: Catalog):
        self._catalog = catalog
        self._lines: tuple[CartLine, ...] = ()

    def snapshot(self) -> Cart:
        return Cart(lines=self._lines)

    def clear(self) -> None:
        """Empty the cart. Only called on an explicit new conversation."""
        self._lines = ()
        logger.info("cart.cleared")

    def add_line(self, item_id: str, temperature: str, sweetness: str, quantity: int) -> AddLineResult:
        """Validate a request and merge it into the cart.

        Checks run in a fixed order and the first failure wins; a rejected
        request leaves the cart untouched.

        Args:
            item_id: Menu item id.
            temperature: Temperature code, e.g. "hot".
            sweetness: Sweetness code, e.g. "regular".
            quantity: Units to add, must be >= 1.

        Returns:
            AddLineResult with the post-merge line, or the rejection reason.
        """
        try:
            item = self._catalog.find_by_id(item_id)
        except MenuItemNotFound as e:
            return self._reject(CartError.UNKNOWN_ITEM, f"{e}.")

        try:
            temp = TemperatureVariant(temperature)
        except ValueError:
            return self._reject(
                CartError.INVALID_TEMPERATURE,
                f"Invalid temperature option '{temperature}'. Valid options: {_codes(TemperatureVariant)}.",
            )

        try:
            sweet = SweetnessVariant(sweetness)
        except ValueError:
            return self._reject(
                CartError.INVALID_SWEETNESS,
                f"Invalid sweetness option '{sweetness}'. Valid options: {_codes(SweetnessVariant)}.",
            )

        if temp not in item.temperatures:
            return self._reject(
                CartError.UNSUPPORTED_TEMPERATURE,
                f"'{item.name}' does not support the '{temp.label}' temperature option. "
                f"Available: {_codes(item.temperatures)}.",
            )

        if sweet not in item.sweetness:
            return self._reject(
                CartError.UNSUPPORTED_SWEETNESS,
                f"'{item.name}' does not support the '{sweet.label}' sweetness option. "
                f"Available: {_codes(item.sweetness)}.",
            )

        if quantity < 1:
            return self._reject(
                CartError.INVALID_QUANTITY,
                f"Quantity must be greater than 0 (got {quantity}).",
            )

        key = (item.id, temp, sweet)
        lines = list(self._lines)
        merged = False
        for index, existing in enumerate(lines):
            if existing.key == key:
                lines[index] = CartLine(item, temp, sweet, existing.quantity + quantity)
                line = lines[index]
                merged = True
                break
        else:
            line = CartLine(item, temp, sweet, quantity)
            lines.append(line)

        self._lines = tuple(lines)
        cart = self.snapshot()

        logger.info("cart.line_added", item_id=item.id, temperature=temp.value,
                    sweetness=sweet.value, quantity=quantity, merged=merged,
                    line_quantity=line.quantity, lines=cart.line_count)
        return AddLineResult(
            success=True,
            line=line,
            cart=cart,
            quantity_added=quantity,
            merged=merged,
        )

    def _reject(self, error: CartError, message: str) -> AddLineResult:
        logger.info("cart.add_rejected", error=error.value)
        return AddLineResult(success=False, cart=self.snapshot(), error=error, message=message)
