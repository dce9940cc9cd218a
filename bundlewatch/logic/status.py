"""Bundle stock-health evaluation."""

from __future__ import annotations

import enum
import json
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass

from bundlewatch.ingest.models import BundleComponent

logger = logging.getLogger(__name__)

TAG_PREFIX = "bundle-"


class Status(str, enum.Enum):
    OK = "ok"
    UNDERSTOCKED = "understocked"
    OUT_OF_STOCK = "out-of-stock"

    @property
    def rank(self) -> int:
        return _RANK[self]

    @property
    def tag(self) -> str:
        return TAG_PREFIX + self.value

    @classmethod
    def parse(cls, value: str | None) -> "Status | None":
        try:
            return cls(value) if value else None
        except ValueError:
            return None


_RANK = {Status.OK: 0, Status.UNDERSTOCKED: 1, Status.OUT_OF_STOCK: 2}
STATUS_TAGS = {status.tag for status in Status}


def worst(a: Status, b: Status) -> Status:
    return a if a.rank >= b.rank else b


@dataclass(slots=True)
class BundleEvaluation:
    components: Status
    own: Status
    out_of_stock: list[int]
    understocked: list[int]

    @property
    def final(self) -> Status:
        return worst(self.components, self.own)


def parse_components(raw: str | None) -> list[BundleComponent]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Unparsable bundle structure: %r", raw)
        return []
    if not isinstance(data, list):
        return []
    components: list[BundleComponent] = []
    for item in data:
        if not isinstance(item, dict) or not item.get("variant_id"):
            continue
        try:
            required = int(item.get("required_quantity") or 1)
            components.append(BundleComponent(variant_id=int(item["variant_id"]), required_quantity=required))
        except (TypeError, ValueError):
            logger.warning("Skipping malformed bundle component %r", item)
    return components


async def components_status(
    components: Iterable[BundleComponent],
    quantity_for: Callable[[int], Awaitable[int]],
) -> tuple[Status, list[int], list[int]]:
    out: list[int] = []
    under: list[int] = []
    for component in components:
        quantity = await quantity_for(component.variant_id)
        if quantity == 0:
            out.append(component.variant_id)
        elif quantity < component.required_quantity:
            under.append(component.variant_id)
    if out:
        return Status.OUT_OF_STOCK, out, under
    if under:
        return Status.UNDERSTOCKED, out, under
    return Status.OK, out, under


def own_status(quantities: Sequence[int]) -> Status:
    if quantities and all(q == 0 for q in quantities):
        return Status.OUT_OF_STOCK
    if any(q < 0 for q in quantities) or sum(quantities) < 0:
        return Status.UNDERSTOCKED
    return Status.OK


async def evaluate_bundle(
    raw_structure: str | None,
    quantities: Sequence[int],
    quantity_for: Callable[[int], Awaitable[int]],
) -> BundleEvaluation:
    components = parse_components(raw_structure)
    comp_status, out, under = await components_status(components, quantity_for)
    return BundleEvaluation(components=comp_status, own=own_status(quantities), out_of_stock=out, understocked=under)


def status_from_tags(tags: Iterable[str]) -> Status | None:
    """Legacy status encoded in tags, worst first."""
    lowered = {tag.strip().lower() for tag in tags}
    for status in (Status.OUT_OF_STOCK, Status.UNDERSTOCKED, Status.OK):
        if status.tag in lowered:
            return status
    return None


def rewrite_status_tags(tags: Iterable[str], status: Status) -> list[str]:
    cleaned = [tag for tag in tags if tag.strip().lower() not in STATUS_TAGS]
    return cleaned + [status.tag]


def should_notify(
    *,
    is_bundle: bool,
    final_status: Status | None,
    previous_status: Status | None,
    increased: bool,
    total: int,
    pending: int,
) -> bool:
    if pending <= 0:
        return False
    if is_bundle:
        return final_status is Status.OK and (previous_status is not Status.OK or increased)
    return increased and total > 0
