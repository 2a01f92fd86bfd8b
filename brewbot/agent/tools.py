"""Agent tools for the WeStore Cafe ordering assistant.

Three tools the model can call: get_menu, add_to_cart and view_cart. All
return strings; failures are strings prefixed with "ERROR:" so the model can
read them and correct itself on the next step. Tools are built per
Catalog/CartStore pair by build_tools() and dispatched through ToolRegistry.
"""

import json
from collections.abc import Callable, Sequence
from typing import Any

import structlog
from langchain_core.tools import BaseTool, StructuredTool
from pydantic import BaseModel, Field, ValidationError, field_validator

from brewbot.core.cart_store import AddLineResult, Cart, CartStore
from brewbot.core.catalog import Catalog

logger = structlog.get_logger(__name__)

MENU_TOOL = "get_menu"
ADD_TO_CART_TOOL = "add_to_cart"
VIEW_CART_TOOL = "view_cart"


class UnknownToolError(Exception):
    """The model asked for a tool that isn't registered."""

    def __init__(self, name: str):
        super().__init__(f"Unknown tool '{name}'")
        self.name = name


class NoArguments(BaseModel):
    """Tool takes no arguments."""


class AddToCartArguments(BaseModel):
    item_id: str = Field(..., description="Menu item ID from get_menu, e.g. 'latte'")
    temperature: str = Field(..., description="Temperature code: hot or iced")
    sweetness: str = Field(..., description="Sweetness code: no_sugar, light, regular or extra")
    quantity: int = Field(..., description="Number of cups to add (at least 1)")

    @field_validator("quantity", mode="before")
    @classmethod
    def reject_bool(cls, value):
        if isinstance(value, bool):
            raise ValueError("quantity must be an integer, not a boolean")
        return value


def _summarize_validation_error(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def malformed_arguments(tool_name: str, detail: str) -> str:
    return f"ERROR: Malformed arguments for {tool_name}: {detail}. Check the tool schema and try again."


def _validation_handler(tool_name: str) -> Callable[[ValidationError], str]:
    def handle(error: ValidationError) -> str:
        logger.info("tools.malformed_arguments", tool=tool_name, errors=error.error_count())
        return malformed_arguments(tool_name, _summarize_validation_error(error))
    return handle


# Rendering

def render_menu(catalog: Catalog) -> str:
    """Full menu as one text block the model can summarize."""
    lines = [f"{catalog.store_name} Menu", ""]
    for item in catalog.list():
        lines.append(item.name)
        lines.append(f"  Price: {catalog.format_price(item.price)}")
        lines.append(f"  Description: {item.description}")
        lines.append(f"  Temperature options: {', '.join(t.value for t in item.temperatures)}")
        lines.append(f"  Sweetness options: {', '.join(s.value for s in item.sweetness)}")
        lines.append(f"  Item ID: {item.id}")
        lines.append("")
    lines.append("Tip: Use the item ID, temperature and sweetness options to place orders.")
    return "\n".join(lines)


def render_add_result(catalog: Catalog, result: AddLineResult) -> str:
    if not result.success:
        return f"ERROR: {result.message}"

    line = result.line
    lines = [
        "Successfully added to cart!",
        "",
        f"Item: {line.item.name}",
        f"Temperature: {line.temperature.label}",
        f"Sweetness: {line.sweetness.label}",
        f"Quantity: {result.quantity_added}",
    ]
    if result.merged:
        lines.append(f"Quantity in cart for this option: {line.quantity}")
    lines.append(f"Subtotal: {catalog.format_price(line.line_total)}")
    lines.append(f"Cart Total: {catalog.format_price(result.cart.grand_total)}")
    return "\n".join(lines)


def render_cart(catalog: Catalog, cart: Cart) -> str:
    if cart.is_empty:
        return (
            "Cart is empty\n\n"
            f"Tip: Use the {MENU_TOOL} tool to view available items, then add them to cart."
        )

    lines = [f"{catalog.store_name} Cart", ""]
    for index, line in enumerate(cart.lines, start=1):
        lines.append(f"{index}. {line.item.name}")
        lines.append(f"   Temperature: {line.temperature.label}")
        lines.append(f"   Sweetness: {line.sweetness.label}")
        lines.append(f"   Quantity: {line.quantity}")
        lines.append(f"   Unit Price: {catalog.format_price(line.item.price)}")
        lines.append(f"   Subtotal: {catalog.format_price(line.line_total)}")
        lines.append("")
    lines.append(f"Total Amount: {catalog.format_price(cart.grand_total)}")
    lines.append(f"Item Types: {cart.line_count}")
    lines.append(f"Total Quantity: {cart.unit_count}")
    return "\n".join(lines)


def build_tools(catalog: Catalog, cart: CartStore) -> list[BaseTool]:
    """Create the three cafe tools bound to the given catalog and cart.

    Args:
        catalog: Menu the tools read from.
        cart: Cart store add_to_cart writes to and view_cart reads.

    Returns:
        [get_menu, add_to_cart, view_cart] as LangChain StructuredTools.
    """

    def get_menu() -> str:
        return render_menu(catalog)

    def add_to_cart(item_id: str, temperature: str, sweetness: str, quantity: int) -> str:
        result = cart.add_line(item_id, temperature, sweetness, quantity)
        return render_add_result(catalog, result)

    def view_cart() -> str:
        return render_cart(catalog, cart.snapshot())

    return [
        StructuredTool.from_function(
            func=get_menu,
            name=MENU_TOOL,
            description=(
                f"Get the complete {catalog.store_name} coffee menu including prices, "
                "descriptions and customization options"
            ),
            args_schema=NoArguments,
            handle_validation_error=_validation_handler(MENU_TOOL),
        ),
        StructuredTool.from_function(
            func=add_to_cart,
            name=ADD_TO_CART_TOOL,
            description="Add specified coffee beverage to shopping cart",
            args_schema=AddToCartArguments,
            handle_validation_error=_validation_handler(ADD_TO_CART_TOOL),
        ),
        StructuredTool.from_function(
            func=view_cart,
            name=VIEW_CART_TOOL,
            description="View all items in shopping cart and total amount",
            args_schema=NoArguments,
            handle_validation_error=_validation_handler(VIEW_CART_TOOL),
        ),
    ]


class ToolRegistry:
    """Name → tool lookup and the dispatch boundary used by the controller."""

    def __init__(self, tools: Sequence[BaseTool]):
        self._tools: dict[str, BaseTool] = {}
        for t in tools:
            if t.name in self._tools:
                raise ValueError(f"Duplicate tool name: {t.name}")
            self._tools[t.name] = t

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def descriptors(self) -> list[BaseTool]:
        """Tools in registration order, for binding to the model."""
        return list(self._tools.values())

    def dispatch(self, name: str, raw_arguments: dict[str, Any] | str | None) -> str:
        """Run a tool and return its text result.

        Args:
            name: Tool name as emitted by the model.
            raw_arguments: Argument object, or raw JSON text if the model's
                arguments could not be parsed upstream.

        Returns:
            The tool's text. Domain and argument errors come back as
            "ERROR: ..." text, never as exceptions.

        Raises:
            UnknownToolError: If no tool is registered under `name`.
        """
        if name not in self._tools:
            logger.error("tools.unknown_tool", tool=name, registered=self.names)
            raise UnknownToolError(name)

        arguments = raw_arguments if raw_arguments is not None else {}
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError as e:
                logger.info("tools.malformed_arguments", tool=name, error=str(e))
                return malformed_arguments(name, f"arguments are not valid JSON ({e.msg})")
        if not isinstance(arguments, dict):
            logger.info("tools.malformed_arguments", tool=name, error="not an object")
            return malformed_arguments(name, "arguments must be a JSON object")

        logger.info("tools.dispatch", tool=name, arguments=arguments)
        result = self._tools[name].invoke(arguments)
        return result if isinstance(result, str) else str(result)
