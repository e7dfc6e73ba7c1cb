"""Quantity-tiered unit pricing for ticket credits.

Pure functions only: no I/O, no session. The tier table comes from
settings.TICKET_PRICE_TIERS unless a caller passes its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence

from tixledger.core.config import settings


@dataclass(frozen=True)
class PriceTier:
    min_quantity: int
    max_quantity: int | None
    unit_price: Decimal

    def contains(self, quantity: int) -> bool:
        if quantity < self.min_quantity:
            return False
        return self.max_quantity is None or quantity <= self.max_quantity


def build_tiers(records: Iterable[dict]) -> tuple[PriceTier, ...]:
    """Turn config records ({min, max, price}) into an ordered tier table.

    Raises ValueError if the table is empty or brackets overlap.
    """
    tiers = tuple(
        PriceTier(
            min_quantity=int(r["min"]),
            max_quantity=None if r.get("max") is None else int(r["max"]),
            unit_price=Decimal(str(r["price"])),
        )
        for r in records
    )
    if not tiers:
        raise ValueError("Price tier table is empty")
    for prev, nxt in zip(tiers, tiers[1:]):
        if prev.max_quantity is None or nxt.min_quantity <= prev.max_quantity:
            raise ValueError(f"Price tiers overlap at quantity {nxt.min_quantity}")
    return tiers


def default_tiers() -> tuple[PriceTier, ...]:
    return build_tiers(settings.TICKET_PRICE_TIERS)


def get_ticket_unit_price(quantity: int, tiers: Sequence[PriceTier] | None = None) -> Decimal:
    """Unit price for buying `quantity` tickets.

    First tier whose range contains the quantity wins; a quantity outside
    every tier is priced at the first tier.
    """
    table = tiers or default_tiers()
    for tier in table:
        if tier.contains(quantity):
            return tier.unit_price
    return table[0].unit_price
