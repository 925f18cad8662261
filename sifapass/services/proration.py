"""
SifaPass Billing - Plan Switch Proration

Pure calculation of the charge for moving between subscription plans
mid-cycle. Unused days of the current plan are credited against the new
plan's price.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sifapass.utils.timeutils import ceil_days, utcnow


class ProrationType(str, Enum):
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"
    NONE = "none"


@dataclass(frozen=True)
class ProrationQuote:
    proration_type: ProrationType
    amount: int
    unused_credit: int
    total_days: int
    remaining_days: int
    next_billing_amount: int

    @property
    def immediate_charge(self) -> bool:
        return self.proration_type == ProrationType.UPGRADE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.proration_type.value,
            "amount": self.amount,
            "unusedCredit": self.unused_credit,
            "totalDays": self.total_days,
            "remainingDays": self.remaining_days,
            "immediateCharge": self.immediate_charge,
            "nextBillingAmount": self.next_billing_amount,
        }


def calculate_proration(
    new_price: int,
    current_price: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> ProrationQuote:
    """
    Quote a plan switch.

    T = whole days in the current cycle, r = whole days left (0 <= r <= T).
    unused = round(current_price * r / T); amount = max(0, new_price - unused).

    Without a current plan and cycle the full new price is due.
    """
    if current_price is None or start_date is None or end_date is None:
        return ProrationQuote(
            proration_type=ProrationType.NONE,
            amount=new_price,
            unused_credit=0,
            total_days=0,
            remaining_days=0,
            next_billing_amount=new_price,
        )

    now = now or utcnow()
    total_days = max(0, ceil_days(start_date, end_date))
    remaining_days = min(max(0, ceil_days(now, end_date)), total_days)

    unused_credit = 0
    if total_days > 0 and remaining_days > 0:
        unused_credit = math.floor(current_price * remaining_days / total_days + 0.5)

    proration_type = ProrationType.UPGRADE if new_price > current_price else ProrationType.DOWNGRADE

    return ProrationQuote(
        proration_type=proration_type,
        amount=max(0, new_price - unused_credit),
        unused_credit=unused_credit,
        total_days=total_days,
        remaining_days=remaining_days,
        next_billing_amount=new_price,
    )
