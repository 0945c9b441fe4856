"""
Parcel builder.

Turns an order's shippable line items into a ParcelSpec: per-item customs
lines (weight, value, HS code, description) and a box template chosen by
total volume. Missing product data falls back to conservative defaults so a
parcel can always be quoted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from core.exceptions import ValidationError
from core.store import FulfillmentStore
from models.order import Order
from models.line_item import LineItem
from models.inventory import Blank, BlankVariant
from models.shipment import ParcelItem, ParcelSpec
from logging_config import get_logger


logger = get_logger(__name__)


# Declared weight is reduced to account for scale tolerance on garment weights
PARCEL_WEIGHT_REDUCER = 0.8
ITEM_WEIGHT_FALLBACK = 16.0      # ounces
ITEM_VALUE_FALLBACK = 10.0       # dollars
ITEM_VALUE_SHARE = 0.15          # share of sale price declared when no customs price
ITEM_VOLUME_FALLBACK = 500.0     # large on purpose, overshoots the box size
HS_CODE_FALLBACK = "6117.80"

HS_CODE_BY_GARMENT = {
    "tee": "6109.10",
    "longsleeve": "6109.10",
    "hoodie": "6110.20",
    "crewneck": "6110.20",
    "shorts": "6203.42",
    "sweatpants": "6203.42",
    "jacket": "6201.93",
    "coat": "6201.93",
    "headwear": "6505.00",
}


@dataclass(frozen=True)
class ParcelTemplate:
    """A box size the warehouse ships in."""

    name: str
    length_cm: float
    width_cm: float
    height_cm: float
    max_volume: float


DEFAULT_TEMPLATES = (
    ParcelTemplate("Small Parcel", 30.0, 23.0, 3.0, 800),
    ParcelTemplate("Medium Parcel", 38.0, 30.0, 3.0, 1600),
)

PARCEL_TEMPLATE_FALLBACK = ParcelTemplate("Large Parcel", 61.0, 48.0, 3.0, 3200)


class ParcelBuilder:
    """
    Build parcels from stored order data.

    Usage:
        builder = ParcelBuilder(store)
        parcel = builder.build(order, items)
    """

    def __init__(self, store: FulfillmentStore, templates: Iterable[ParcelTemplate] = DEFAULT_TEMPLATES):
        self._store = store
        self._templates = sorted(templates, key=lambda t: t.max_volume)

    def build(self, order: Order, items: List[LineItem]) -> ParcelSpec:
        """
        Build the parcel for ``items`` of ``order``.

        Raises:
            ValidationError: No items to ship
        """
        if not items:
            raise ValidationError(f"Order {order.id} has no items to ship")

        parcel_items = []
        total_weight = 0.0
        total_volume = 0.0
        for item in items:
            variant, blank = self._blank_data(item)
            weight = _round(self._item_weight(item, variant, order) * PARCEL_WEIGHT_REDUCER)
            volume = self._item_volume(item, variant, order)
            parcel_items.append(ParcelItem(
                line_item_id=item.id,
                description=_customs_description(variant, blank),
                quantity=item.quantity,
                weight_oz=weight,
                value=_round(_item_value(item, blank)),
                hs_code=_hs_code(blank),
            ))
            total_weight += weight * item.quantity
            total_volume += volume * item.quantity

        template = self._template_for(total_volume, order.id)
        return ParcelSpec(
            order_id=order.id,
            template=template.name,
            length_cm=template.length_cm,
            width_cm=template.width_cm,
            height_cm=template.height_cm,
            weight_oz=_round(total_weight),
            items=tuple(parcel_items),
            destination_country=order.destination_country,
        )

    def _blank_data(self, item: LineItem) -> Tuple[Optional[BlankVariant], Optional[Blank]]:
        if not item.blank_variant_id:
            return None, None
        variant = self._store.variants.get(item.blank_variant_id)
        blank = self._store.blanks.get(variant.blank_id) if variant else None
        return variant, blank

    @staticmethod
    def _item_weight(item: LineItem, variant: Optional[BlankVariant], order: Order) -> float:
        if variant and variant.weight_oz:
            return variant.weight_oz
        logger.warning(f"Order {order.id}: no weight for {item.name or item.id}, using {ITEM_WEIGHT_FALLBACK} oz")
        return ITEM_WEIGHT_FALLBACK

    @staticmethod
    def _item_volume(item: LineItem, variant: Optional[BlankVariant], order: Order) -> float:
        if variant and variant.volume:
            return variant.volume
        logger.warning(f"Order {order.id}: no volume for {item.name or item.id}, using {ITEM_VOLUME_FALLBACK}")
        return ITEM_VOLUME_FALLBACK

    def _template_for(self, total_volume: float, order_id: str) -> ParcelTemplate:
        for template in self._templates:
            if template.max_volume >= total_volume:
                return template
        logger.warning(f"Order {order_id}: no template fits volume {total_volume}, using {PARCEL_TEMPLATE_FALLBACK.name}")
        return PARCEL_TEMPLATE_FALLBACK


def _item_value(item: LineItem, blank: Optional[Blank]) -> float:
    if blank and blank.customs_price:
        return blank.customs_price
    return item.unit_value * ITEM_VALUE_SHARE or ITEM_VALUE_FALLBACK


def _hs_code(blank: Optional[Blank]) -> str:
    if blank and blank.hs_code:
        return blank.hs_code
    if blank:
        return HS_CODE_BY_GARMENT.get(blank.garment_type, HS_CODE_FALLBACK)
    return HS_CODE_FALLBACK


def _customs_description(variant: Optional[BlankVariant], blank: Optional[Blank]) -> str:
    if blank and variant and variant.color:
        return f"Wholesale {variant.color} {blank.garment_type}"
    if blank:
        return f"Wholesale {blank.garment_type}"
    return "Wholesale sweater"


def _round(value: float) -> float:
    return round(value, 2)
