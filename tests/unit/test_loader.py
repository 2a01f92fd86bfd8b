"""Tests for the menu loader."""

import json
from decimal import Decimal

import pytest
from pydantic import ValidationError

from brewbot.core.catalog import SweetnessVariant, TemperatureVariant
from brewbot.data.loader import load_catalog


def _write_menu(tmp_path, items, **extra):
    path = tmp_path / "menu.json"
    path.write_text(json.dumps({"items": items, **extra}), encoding="utf-8")
    return path


class TestBundledMenu:

    def test_loads_five_items(self):
        catalog = load_catalog()
        assert [i.id for i in catalog.list()] == ["americano", "latte", "cappuccino", "mocha", "espresso"]
        assert catalog.store_name == "WeStore Cafe"

    def test_prices_are_decimal(self):
        catalog = load_catalog()
        assert catalog.find_by_id("latte").price == Decimal("35")

    def test_variant_restrictions(self):
        catalog = load_catalog()
        assert catalog.find_by_id("cappuccino").temperatures == (TemperatureVariant.HOT,)
        assert SweetnessVariant.NO_SUGAR not in catalog.find_by_id("mocha").sweetness


class TestCustomMenu:

    def test_custom_file(self, tmp_path):
        path = _write_menu(tmp_path, [{
            "id": "tea", "name": "Tea", "price": "3.5",
            "temperatures": ["hot"], "sweetness": ["no_sugar"],
        }], store_name="Tea Hut", currency_symbol="£")
        catalog = load_catalog(path)
        assert catalog.store_name == "Tea Hut"
        assert catalog.format_price(catalog.find_by_id("tea").price) == "£3.50"

    def test_bad_variant_code(self, tmp_path):
        path = _write_menu(tmp_path, [{
            "id": "tea", "name": "Tea", "price": "3",
            "temperatures": ["lukewarm"], "sweetness": ["no_sugar"],
        }])
        with pytest.raises(ValidationError):
            load_catalog(path)

    def test_duplicate_ids(self, tmp_path):
        entry = {"id": "tea", "name": "Tea", "price": "3",
                 "temperatures": ["hot"], "sweetness": ["no_sugar"]}
        path = _write_menu(tmp_path, [entry, entry])
        with pytest.raises(ValueError, match="unique"):
            load_catalog(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_catalog(tmp_path / "nope.json")
