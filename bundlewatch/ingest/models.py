"""Catalog data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

BUNDLE_TAG = "bundle"


def split_tags(raw: str | None) -> list[str]:
    return [tag.strip() for tag in str(raw or "").split(",") if tag.strip()]


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass(slots=True)
class Variant:
    id: int
    quantity: int

    @classmethod
    def from_shopify(cls, data: Mapping[str, Any]) -> "Variant":
        return cls(id=int(data["id"]), quantity=_as_int(data.get("inventory_quantity")))


@dataclass(slots=True)
class Product:
    id: int
    title: str
    handle: str
    tags: list[str] = field(default_factory=list)
    variants: list[Variant] = field(default_factory=list)

    @classmethod
    def from_shopify(cls, data: Mapping[str, Any]) -> "Product":
        return cls(
            id=int(data["id"]),
            title=data.get("title") or "",
            handle=data.get("handle") or "",
            tags=split_tags(data.get("tags")),
            variants=[Variant.from_shopify(v) for v in data.get("variants") or []],
        )

    @property
    def quantities(self) -> list[int]:
        return [variant.quantity for variant in self.variants]

    @property
    def total(self) -> int:
        return sum(self.quantities)

    @property
    def is_bundle(self) -> bool:
        return any(tag.lower() == BUNDLE_TAG for tag in self.tags)

    @property
    def tag_string(self) -> str:
        return ", ".join(self.tags)


@dataclass(slots=True)
class BundleComponent:
    variant_id: int
    required_quantity: int = 1
