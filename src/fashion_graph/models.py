"""
Catalog aggregates consumed from the relational side of the application.

An aggregate is one product fully hydrated with its seller, category text and
reviews (each with its reviewer). Every relation is optional: conversion
omits the edges of whatever is missing.
"""

from datetime import datetime
from typing import Iterable, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field

EntityId = Union[int, str]


class Person(BaseModel):
    """A seller or a reviewer."""
    model_config = ConfigDict(frozen=True)

    id: Optional[EntityId] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class ReviewEntry(BaseModel):
    """A single review of a product."""
    model_config = ConfigDict(frozen=True)

    id: Optional[EntityId] = None
    rating: float = 0.0
    comment: Optional[str] = None
    date: Optional[datetime] = None
    reviewer: Optional[Person] = None


class ProductAggregate(BaseModel):
    """A product with its seller, category and reviews."""
    model_config = ConfigDict(frozen=True)

    id: Optional[EntityId] = None
    name: Optional[str] = None
    description: Optional[str] = None
    price: float = 0.0
    category: Optional[str] = None
    photo_url: Optional[str] = None
    seller: Optional[Person] = None
    reviews: Optional[list[Optional[ReviewEntry]]] = Field(default_factory=list)
    average_rating: float = 0.0
    num_reviews: int = 0


class AggregateSource(Protocol):
    """The authoritative relational source the graph is rebuilt from."""

    def load_all(self) -> Iterable[ProductAggregate]: ...
