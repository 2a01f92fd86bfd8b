"""Menu loader.

Reads the JSON menu file, validates every entry into a MenuItem and returns
a ready-to-share Catalog.
"""

import json
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

from brewbot.core.catalog import Catalog, MenuItem

logger = structlog.get_logger(__name__)

DEFAULT_MENU_PATH = Path(__file__).with_name("menu.json")


class MenuFile(BaseModel):
    """On-disk menu document."""
    store_name: str = "WeStore Cafe"
    currency_symbol: str = "$"
    items: list[MenuItem] = Field(..., min_length=1)


def load_catalog(json_path: str | Path | None = None) -> Catalog:
    """Load and validate a menu file into a Catalog.

    Args:
        json_path: Path to the menu JSON. Defaults to the bundled menu.json.

    Returns:
        Catalog with items in file order.

    Raises:
        FileNotFoundError: If the path doesn't exist.
        pydantic.ValidationError: If an entry is malformed (bad variant code,
            negative price, missing field).
        ValueError: If two items share an id.
    """
    path = Path(json_path) if json_path else DEFAULT_MENU_PATH
    raw = json.loads(path.read_text(encoding="utf-8"))
    menu = MenuFile.model_validate(raw)

    catalog = Catalog(menu.items, store_name=menu.store_name, currency_symbol=menu.currency_symbol)
    logger.info("menu.loaded", path=str(path), items=len(catalog))
    return catalog
