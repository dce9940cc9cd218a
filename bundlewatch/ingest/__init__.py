"""Catalog ingestion."""

from __future__ import annotations

from bundlewatch.ingest.catalog import CatalogSnapshot, build_snapshot
from bundlewatch.ingest.models import BundleComponent, Product, Variant

__all__ = ["BundleComponent", "CatalogSnapshot", "Product", "Variant", "build_snapshot"]
