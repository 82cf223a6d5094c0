"""Tests for checkpoint persistence."""

import json

import pytest

from checkpoint import (
    CATEGORIES,
    INITIAL_PRODUCTS,
    CheckpointMissingError,
    CheckpointStore,
)
from records import CategoryRecord, ProductSummaryRecord

from conftest import ORIGIN


def _summaries():
    return [
        ProductSummaryRecord(
            name=f"Product {i}",
            image_url=f"{ORIGIN}/img/{i}.png" if i % 2 else None,
            link=f"{ORIGIN}/gb/products/p{i}/",
            parent_category_name="Electrical Safety",
            parent_subcategory_name="Analysers",
        )
        for i in range(3)
    ]


def test_round_trip(tmp_path):
    store = CheckpointStore(tmp_path)
    written = _summaries()
    path = store.write_stage(INITIAL_PRODUCTS, written, date_stamp="2026-10-19")

    assert path == tmp_path / "product_initial" / "initial_products_2026-10-19.json"
    assert store.read_stage(path, ProductSummaryRecord) == written


def test_dated_artifacts_are_never_overwritten(tmp_path):
    store = CheckpointStore(tmp_path)
    first = store.write_stage(INITIAL_PRODUCTS, _summaries(), date_stamp="2026-10-19")
    second = store.write_stage(INITIAL_PRODUCTS, [], date_stamp="2026-10-19")

    assert first != second
    assert second.name == "initial_products_2026-10-19_2.json"
    assert len(json.loads(first.read_text())) == 3
    assert json.loads(second.read_text()) == []


def test_dated_artifact_requires_stamp(tmp_path):
    with pytest.raises(ValueError):
        CheckpointStore(tmp_path).write_stage(INITIAL_PRODUCTS, [])


def test_find_latest_orders_by_date_then_sequence(tmp_path):
    store = CheckpointStore(tmp_path)
    store.write_stage(INITIAL_PRODUCTS, [], date_stamp="2026-10-18")
    store.write_stage(INITIAL_PRODUCTS, [], date_stamp="2026-09-30")
    store.write_stage(INITIAL_PRODUCTS, [], date_stamp="2026-10-18")
    (tmp_path / "product_initial" / "notes.txt").write_text("ignored")

    assert store.find_latest(INITIAL_PRODUCTS).name == "initial_products_2026-10-18_2.json"


def test_find_latest_missing(tmp_path):
    store = CheckpointStore(tmp_path)
    with pytest.raises(CheckpointMissingError):
        store.find_latest(INITIAL_PRODUCTS)
    (tmp_path / "product_initial").mkdir()
    with pytest.raises(CheckpointMissingError):
        store.find_latest(INITIAL_PRODUCTS)


def test_listing_snapshot_is_undated(tmp_path):
    store = CheckpointStore(tmp_path)
    categories = [CategoryRecord(name="Foo", link=f"{ORIGIN}/gb/products/foo/")]
    path = store.write_stage(CATEGORIES, categories)

    assert path == tmp_path / "category_result" / "categories.json"
    assert store.find_latest(CATEGORIES) == path
    assert json.loads(path.read_text())[0]["link"] == f"{ORIGIN}/gb/products/foo/"
