# Overview: Cash change calculator for the till; pure, no state.

"""
Change Calculator

WHY: Cashiers type the cash handed over and need the change to give back, or
how much is still missing. Only meaningful for cash: wallet payments are
exact by construction.

POLICY: A shortfall is reported, never enforced. The operator may still
complete the sale (IOU / partial payment at the cashier's discretion).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from .pricing_service import ZERO, round_money

# =============================================================================
# CHANGE STATUS (CONSTANTS)
# =============================================================================

CHANGE_INACTIVE = "INACTIVE"        # non-cash payment method
CHANGE_AWAITING = "AWAITING_INPUT"  # cash, nothing tendered yet
CHANGE_SHORT = "SHORT"              # cash, tendered < total
CHANGE_DUE = "CHANGE_DUE"           # cash, tendered >= total


@dataclass(frozen=True)
class ChangeReport:
    status: str
    total: Decimal
    tendered: Decimal = ZERO
    change_due: Decimal | None = None
    shortfall: Decimal | None = None

    @property
    def insufficient(self) -> bool:
        return self.status == CHANGE_SHORT

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "total": str(self.total),
            "tendered": str(self.tendered),
            "change_due": str(self.change_due) if self.change_due is not None else None,
            "shortfall": str(self.shortfall) if self.shortfall is not None else None,
            "insufficient": self.insufficient,
        }


def calculate_change(
    total: Decimal,
    tendered: Decimal,
    method: str,
    cash_method: str = "efectivo",
) -> ChangeReport:
    """
    - method != cash         -> INACTIVE, nothing computed
    - cash, tendered <= 0    -> AWAITING_INPUT, nothing computed
    - cash, 0 < tendered < total -> SHORT, shortfall = total - tendered
    - cash, tendered >= total    -> CHANGE_DUE, change_due = tendered - total
    """
    total = round_money(total)
    if method != cash_method:
        return ChangeReport(status=CHANGE_INACTIVE, total=total)

    if tendered is None or tendered <= ZERO:
        return ChangeReport(status=CHANGE_AWAITING, total=total)

    tendered = round_money(tendered)
    if tendered < total:
        return ChangeReport(
            status=CHANGE_SHORT,
            total=total,
            tendered=tendered,
            shortfall=total - tendered,
        )

    return ChangeReport(
        status=CHANGE_DUE,
        total=total,
        tendered=tendered,
        change_due=tendered - total,
    )
