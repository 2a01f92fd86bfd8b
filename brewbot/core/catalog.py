"""Read-only coffee menu: variant enums, menu items and the Catalog lookup.

The Catalog is built once at startup (see brewbot.data.loader) and shared
by the cart store and the menu tool. Nothing here mutates after construction.
"""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TemperatureVariant(str, Enum):
    """Serving temperature a drink can be ordered at."""
    HOT = "hot"
    ICED = "iced"

    @property
    def label(self) -> str:
        return _TEMPERATURE_LABELS[self]


class SweetnessVariant(str, Enum):
    """Sweetness level a drink can be ordered with."""
    NO_SUGAR = "no_sugar"
    LIGHT = "light"
    REGULAR = "regular"
    EXTRA = "extra"

    @property
    def label(self) -> str:
        return _SWEETNESS_LABELS[self]


_TEMPERATURE_LABELS = {
    TemperatureVariant.HOT: "Hot",
    TemperatureVariant.ICED: "Iced",
}

_SWEETNESS_LABELS = {
    SweetnessVariant.NO_SUGAR: "No Sugar",
    SweetnessVariant.LIGHT: "Light",
    SweetnessVariant.REGULAR: "Regular",
    SweetnessVariant.EXTRA: "Extra",
}


class MenuItem(BaseModel):
    """A single beverage on the menu."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Stable item identifier, e.g. 'latte'")
    name: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0)
    description: str = ""
    temperatures: tuple[TemperatureVariant, ...] = Field(..., min_length=1)
    sweetness: tuple[SweetnessVariant, ...] = Field(..., min_length=1)


class MenuItemNotFound(KeyError):
    """Raised by Catalog.find_by_id when no item has the given id."""

    def __init__(self, item_id: str):
        super().__init__(item_id)
        self.item_id = item_id

    def __str__(self) -> str:
        return f"Cannot find a beverage with item ID '{self.item_id}'"


def format_price(amount: Decimal, symbol: str = "$") -> str:
    """Render a price, dropping decimals for whole amounts ($70, $4.50)."""
    if amount == amount.to_integral_value():
        return f"{symbol}{amount:.0f}"
    return f"{symbol}{amount:.2f}"


class Catalog:
    """Immutable, ordered collection of menu items."""

    def __init__(self, items: list[MenuItem], store_name: str = "WeStore Cafe", currency_symbol: str = "$"):
        self._items = tuple(items)
        self._by_id = {item.id: item for item in self._items}
        if len(self._by_id) != len(self._items):
            raise ValueError("Menu item ids must be unique")
        self.store_name = store_name
        self.currency_symbol = currency_symbol

    def list(self) -> tuple[MenuItem, ...]:
        return self._items

    def find_by_id(self, item_id: str) -> MenuItem:
        """Look up an item by id.

        Raises:
            MenuItemNotFound: If the id is not on the menu.
        """
        try:
            return self._by_id[item_id]
        except KeyError:
            raise MenuItemNotFound(item_id) from None

    def format_price(self, amount: Decimal) -> str:
        return format_price(amount, self.currency_symbol)

    def __len__(self) -> int:
        return len(self._items)
