import asyncio

import pytest

from bloomfeed.domain.models.product import SourceRef
from bloomfeed.domain.services.hydration_svc import ProductHydrator

from fakes import make_record


def _affiliate_record(i, product_id):
    return make_record(i).model_copy(update={"source_ref": SourceRef(product_id=product_id, source="affiliate")})


@pytest.fixture
def hydrator(catalog):
    return ProductHydrator(catalog)


def test_one_lookup_per_source(hydrator, catalog):
    records = [make_record(1), make_record(2), _affiliate_record(3, "a4"), make_record(1)]

    products = asyncio.run(hydrator.hydrate(records))

    assert sorted(catalog.lookups) == [("affiliate", ["a4"]), ("marketplace", ["m1", "m2"])]
    assert products[("marketplace", "m2")].title == "Listing 2"
    assert products[("affiliate", "a4")].price == 44.0
    assert products[("affiliate", "a4")].source == "affiliate"


def test_sold_listing_still_hydrates(hydrator, catalog):
    catalog.items["marketplace"][0] = catalog.items["marketplace"][0].model_copy(update={"status": "sold"})
    products = asyncio.run(hydrator.hydrate([make_record(1)]))
    assert products[("marketplace", "m1")].available is False


def test_missing_rows_are_left_out(hydrator):
    products = asyncio.run(hydrator.hydrate([make_record(42)]))
    assert products == {}


def test_a_failing_source_only_drops_its_own_products(hydrator, catalog):
    catalog.fail_lookups.add("affiliate")
    products = asyncio.run(hydrator.hydrate([make_record(1), _affiliate_record(2, "a2")]))
    assert set(products) == {("marketplace", "m1")}


def test_nothing_to_hydrate(hydrator, catalog):
    assert asyncio.run(hydrator.hydrate([])) == {}
    assert catalog.lookups == []
