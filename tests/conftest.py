"""
Shared fixtures for the fashion graph tests.
"""

from datetime import datetime, timezone

import pytest

from fashion_graph.config import GraphConfig
from fashion_graph.converter import GraphConverter
from fashion_graph.models import Person, ProductAggregate, ReviewEntry
from fashion_graph.schema import load_schema
from fashion_graph.service import CatalogGraph
from fashion_graph.store import GraphStore


@pytest.fixture
def config():
    return GraphConfig()


@pytest.fixture
def schema(config):
    return load_schema(config)


@pytest.fixture
def converter(schema, config):
    return GraphConverter(schema, config)


@pytest.fixture
def store(converter):
    return GraphStore(converter)


@pytest.fixture
def graph(store, config):
    return CatalogGraph(store, config)


@pytest.fixture
def seller():
    return Person(id=10, first_name="Ada", last_name="Stone", email="ada@shop.example")


@pytest.fixture
def reviewer():
    return Person(id=20, first_name="Bo", last_name="Reed", email="bo@mail.example")


@pytest.fixture
def make_review(reviewer):
    """Factory for reviews written by the default reviewer."""
    def _make(review_id, rating=4.0, comment="Great fit", date=None, person=reviewer):
        return ReviewEntry(
            id=review_id,
            rating=rating,
            comment=comment,
            date=date or datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
            reviewer=person,
        )
    return _make


@pytest.fixture
def make_product(seller):
    """Factory for product aggregates sold by the default seller."""
    def _make(product_id, name=None, category=None, price=10.0, description=None, reviews=None, **kwargs):
        reviews = list(reviews or [])
        return ProductAggregate(
            id=product_id,
            name=name if name is not None else f"Product {product_id}",
            description=description,
            price=price,
            category=category,
            seller=kwargs.pop("seller", seller),
            reviews=reviews,
            average_rating=kwargs.pop("average_rating", 0.0),
            num_reviews=kwargs.pop("num_reviews", len(reviews)),
            **kwargs,
        )
    return _make


@pytest.fixture
def dresses(make_product, make_review):
    """P1 (no reviews) and P2 (one review rating 4), both in 'Dress'."""
    p1 = make_product(1, name="Silk Evening Dress", category="Dress", price=129.99,
                      description="A flowing silk dress for evening wear")
    p2 = make_product(2, name="Summer Sundress", category="Dress", price=89.50,
                      description="Light cotton dress with floral print",
                      reviews=[make_review(100, rating=4.0)], average_rating=4.0)
    return p1, p2


@pytest.fixture
def shirts(make_product):
    """Five shirts plus two unrelated products."""
    products = [
        make_product(10 + i, name=f"Shirt {name}", category="Shirt", price=price,
                     description=f"{name} cotton shirt")
        for i, (name, price) in enumerate([
            ("Oxford", 45.0), ("Linen", 60.0), ("Flannel", 38.5), ("Denim", 52.0), ("Polo", 30.0),
        ])
    ]
    products.append(make_product(30, name="Wool Scarf", category="Accessories", price=25.0,
                                 description="Warm wool scarf"))
    products.append(make_product(31, name="Leather Belt", category="Accessories", price=35.0,
                                 description="Brown leather belt, not a shirt"))
    return products
