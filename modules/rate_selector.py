"""Pick a postage rate for an order from quotes across carrier backends."""

from __future__ import annotations

from typing import List, Optional

from models.order import ShippingPriority
from models.shipment import Rate
from logging_config import get_logger


logger = get_logger(__name__)


# Maximum share of the order total an express rate may cost
EXPRESS_RATE_THRESHOLD = 0.25

# Fastest rates above this share of the order total are logged
FASTEST_RATE_THRESHOLD = 0.40


def cheapest(rates: List[Rate]) -> Optional[Rate]:
    if not rates:
        return None
    return min(rates, key=lambda r: r.cost)


def _by_speed(rates: List[Rate]) -> List[Rate]:
    return sorted((r for r in rates if r.delivery_days is not None), key=lambda r: (r.delivery_days, r.cost))


def select_rate(
    rates: List[Rate],
    shipping_priority: ShippingPriority,
    order_total: float = 0.0,
    order_id: str = "",
) -> Optional[Rate]:
    """
    Choose a rate according to the order's shipping priority.

    - standard: cheapest rate
    - express:  fastest rate costing at most 25% of the order total,
                otherwise the cheapest
    - fastest:  fastest rate regardless of cost (logged when it costs more
                than 40% of the order total), otherwise the cheapest when
                no rate carries a delivery estimate

    Returns:
        The chosen rate, or None if there are no rates
    """
    if not rates:
        return None

    if shipping_priority == ShippingPriority.EXPRESS:
        threshold = order_total * EXPRESS_RATE_THRESHOLD
        affordable = _by_speed([r for r in rates if r.cost <= threshold])
        if affordable:
            return affordable[0]
        logger.warning(f"No affordable express rate for order {order_id}; using cheapest")
        return cheapest(rates)

    if shipping_priority == ShippingPriority.FASTEST:
        ranked = _by_speed(rates)
        if not ranked:
            logger.warning(f"No delivery estimates for order {order_id}; using cheapest")
            return cheapest(rates)
        rate = ranked[0]
        if rate.cost > order_total * FASTEST_RATE_THRESHOLD:
            logger.warning(f"Fastest rate for order {order_id} ({rate.cost:.2f}) exceeds threshold")
        return rate

    return cheapest(rates)
