"""
Discount code resolution.

A code is best effort: a missing, inactive, expired or exhausted code
resolves to a zero discount with a reason, it never raises. Resolution is
read-only. The use counter is only incremented by the store when a booking
is finalized.
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
import logging
from typing import Callable, Optional

from pydantic import BaseModel

from models import DiscountCode

logger = logging.getLogger(__name__)

REASON_NOT_FOUND = 'not_found'
REASON_INACTIVE = 'inactive'
REASON_EXPIRED = 'expired'
REASON_EXHAUSTED = 'exhausted'


class DiscountResult(BaseModel):
    discount_amount: Decimal = Decimal('0')
    applies_to: Optional[str] = None  # 'subtotal' or a waived line item
    code: Optional[str] = None
    code_id: Optional[str] = None
    reason: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.discount_amount > 0

    def to_dict(self):
        return {
            'discountAmount': float(self.discount_amount),
            'appliesTo': self.applies_to,
            'code': self.code,
            'reason': self.reason,
            'applied': self.applied,
        }


def normalize_code(code: Optional[str]) -> str:
    return (code or '').strip().upper()


class DiscountResolver:
    """
    Maps a code string to a discount.

    `lookup` is any callable returning a DiscountCode (or None) for an
    upper-cased code; in production it is the store's finder.
    """

    def __init__(self, lookup: Callable[[str], Optional[DiscountCode]], clock=None):
        self.lookup = lookup
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _ineligible_reason(self, discount: Optional[DiscountCode], now: datetime) -> Optional[str]:
        if discount is None:
            return REASON_NOT_FOUND
        if not discount.is_active:
            return REASON_INACTIVE
        if discount.expires_at is not None:
            expires_at = discount.expires_at
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if expires_at <= now:
                return REASON_EXPIRED
        if discount.max_uses is not None and discount.current_uses >= discount.max_uses:
            return REASON_EXHAUSTED
        return None

    def _fetch(self, code: str) -> Optional[DiscountCode]:
        try:
            return self.lookup(code)
        except Exception as e:
            # lookup failures price as not_found
            logger.error(f"Discount lookup failed for {code}: {e}", exc_info=True)
            return None

    def check(self, code: Optional[str], now: Optional[datetime] = None):
        """Eligibility preview: (DiscountCode or None, reason or None). No mutation."""
        code = normalize_code(code)
        if not code:
            return None, REASON_NOT_FOUND
        discount = self._fetch(code)
        reason = self._ineligible_reason(discount, now or self.clock())
        if reason:
            return None, reason
        return discount, None

    def resolve(
        self,
        code: Optional[str],
        subtotal,
        line_items: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> DiscountResult:
        """
        Discount for `code` against the pre-margin subtotal.

        `line_items` maps waivable item names (transport, reception,
        farewell, tours, services) to their cost in the base unit.
        """
        normalized = normalize_code(code)
        if not normalized:
            return DiscountResult()

        discount, reason = self.check(normalized, now=now)
        if discount is None:
            logger.warning(f"Discount code {normalized} not applied: {reason}")
            return DiscountResult(code=normalized, reason=reason)

        subtotal = Decimal(str(subtotal))
        line_items = line_items or {}

        if discount.percentage is not None:
            amount = (subtotal * discount.percentage / 100).quantize(Decimal('0.01'), ROUND_HALF_UP)
            applies_to = 'subtotal'
        else:
            amount = Decimal(str(line_items.get(discount.waived_item, 0)))
            applies_to = discount.waived_item

        # Never discount more than there is to pay.
        amount = max(Decimal('0'), min(amount, subtotal))
        logger.info(f"Discount code {normalized} resolved: {amount} off {applies_to}")
        return DiscountResult(
            discount_amount=amount,
            applies_to=applies_to,
            code=discount.code,
            code_id=discount.id,
        )
