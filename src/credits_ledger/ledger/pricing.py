"""Per-action credit pricing."""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Mapping

from ..config import PricingSettings
from .errors import PricingConfigError

CostFunction = Callable[[float], "int | float | Decimal"]


@dataclass(frozen=True)
class PricingRule:
    """Metered rate; cost is ``ceil(value * rate)`` unless ``calculate`` overrides it."""

    rate: float
    unit: str
    calculate: CostFunction | None = None

    def cost(self, value: float) -> int:
        if self.calculate is None:
            # Decimal keeps 1.1 * 100 at 110 instead of 110.00000000000001
            return math.ceil(Decimal(str(value)) * Decimal(str(self.rate)))
        raw = self.calculate(value)
        if isinstance(raw, bool) or not isinstance(raw, (int, float, Decimal)):
            raise PricingConfigError(f"Custom cost must be a number, got: {raw!r}")
        amount = Decimal(str(raw))
        if not amount.is_finite() or amount < 0:
            raise PricingConfigError(f"Custom cost must be finite and non-negative, got: {raw}")
        return math.ceil(amount)


DEFAULT_METERED: dict[str, PricingRule] = {
    "video_generation": PricingRule(rate=10, unit="second"),
    "training_job": PricingRule(rate=1000, unit="gpu_hour"),
}

DEFAULT_FIXED: dict[str, int] = {
    "chat_message": 10,
    "canvas_generation_simple": 50,
    "canvas_generation_complex": 75,
}


class PricingEngine:
    """Maps ``(action, usage)`` to an integer credit cost.

    Metered actions are priced by their :class:`PricingRule`; fixed actions
    cost a flat amount per use, with ``usage`` counting uses.
    """

    def __init__(
        self,
        metered: Mapping[str, PricingRule] | None = None,
        fixed: Mapping[str, int] | None = None,
    ) -> None:
        self._metered: dict[str, PricingRule] = dict(DEFAULT_METERED if metered is None else metered)
        self._fixed: dict[str, int] = dict(DEFAULT_FIXED if fixed is None else fixed)

    @classmethod
    def from_config(cls, settings: PricingSettings) -> PricingEngine:
        metered = {action: PricingRule(rate=item.rate, unit=item.unit) for action, item in settings.metered.items()}
        return cls(metered=metered, fixed=settings.fixed)

    def calculate_cost(self, action: str, value: float = 1) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise PricingConfigError(f"Value must be a finite number, got: {value!r}", action)
        if value < 0:
            raise PricingConfigError(f"Value must be non-negative, got: {value}", action)

        rule = self._metered.get(action)
        if rule is not None:
            try:
                return rule.cost(value)
            except PricingConfigError as exc:
                raise PricingConfigError(exc.message, action) from exc
        flat = self._fixed.get(action)
        if flat is not None:
            return math.ceil(Decimal(flat) * Decimal(str(value)))
        raise PricingConfigError(f"No pricing configuration found for action: {action}", action)

    def get_rule(self, action: str) -> PricingRule:
        rule = self._metered.get(action)
        if rule is None:
            raise PricingConfigError(f"No pricing configuration found for action: {action}", action)
        return rule

    def fixed_cost(self, action: str) -> int:
        cost = self._fixed.get(action)
        if cost is None:
            raise PricingConfigError(f"No fixed price configured for action: {action}", action)
        return cost

    def has_rule(self, action: str) -> bool:
        return action in self._metered or action in self._fixed

    def register(self, action: str, rule: PricingRule) -> None:
        if rule.rate < 0:
            raise PricingConfigError("rate must be >= 0", action)
        self._metered[action] = rule

    def register_fixed(self, action: str, cost: int) -> None:
        if isinstance(cost, bool) or not isinstance(cost, int) or cost <= 0:
            raise PricingConfigError("fixed cost must be a positive integer", action)
        self._fixed[action] = cost

    def actions(self) -> dict[str, str]:
        listing = {action: f"{rule.rate}/{rule.unit}" for action, rule in self._metered.items()}
        listing.update({action: f"{cost}/use" for action, cost in self._fixed.items()})
        return listing
