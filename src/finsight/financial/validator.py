"""
Validator: accounting invariants on a ``MetricsSummary`` before it leaves the engine.

Findings come in three severities:

- **errors** (soft): an invariant does not hold within the rounding tolerance.
  Logged with full numeric context; the summary is still returned, flagged.
- **hard violations**: a sanity bound is exceeded (negative totals, or a
  magnitude above ``max_abs_total``).  ``enforce`` raises ``SanityBoundError``
  so the caller can return a degraded-data response instead of the numbers.
- **warnings**: unusual but plausible situations (thin liquidity, spending far
  above income).

Non-finite money fields are replaced with zero and flagged, never passed on.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger

from finsight.core.exceptions import SanityBoundError
from finsight.core.money import ZERO, is_finite, round_money, sum_money

from .models import MONEY_FIELDS, MetricsSummary

DEFAULT_TOLERANCE = Decimal("0.01")
DEFAULT_MAX_ABS_TOTAL = Decimal("1000000000")


@dataclass
class ValidationResult:
    context: str
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    hard_violations: list[str] = field(default_factory=list)
    sanitized_fields: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors and not self.hard_violations and not self.sanitized_fields

    @property
    def is_sane(self) -> bool:
        return not self.hard_violations

    @property
    def flags(self) -> list[str]:
        sanitized = [f"non-finite {f} replaced with 0" for f in self.sanitized_fields]
        return [*self.hard_violations, *self.errors, *sanitized]


class MetricsValidator:
    """Checks a ``MetricsSummary`` against the engine's invariants."""

    def __init__(self, tolerance: Decimal = DEFAULT_TOLERANCE, max_abs_total: Decimal = DEFAULT_MAX_ABS_TOTAL):
        self.tolerance = Decimal(tolerance)
        self.max_abs_total = Decimal(max_abs_total)

    @classmethod
    def from_config(cls, settings) -> MetricsValidator:
        """Build from a validated ``FinsightConfig``."""
        return cls(tolerance=settings.validation.tolerance, max_abs_total=settings.validation.max_abs_total)

    def _off(self, actual: Decimal, expected: Decimal) -> bool:
        return abs(actual - expected) > self.tolerance

    def validate(self, metrics: MetricsSummary, context: str = "metrics") -> ValidationResult:
        result = ValidationResult(context=context)

        for name in MONEY_FIELDS:
            if not is_finite(getattr(metrics, name)):
                result.sanitized_fields.append(name)
        buckets_by_label = {
            "assets_by_type": metrics.assets_by_type,
            "liabilities_by_type": metrics.liabilities_by_type,
        }
        for label, buckets in buckets_by_label.items():
            for key, value in buckets.items():
                if not is_finite(value):
                    result.sanitized_fields.append(f"{label}.{key}")
        if result.sanitized_fields:
            # Arithmetic checks below need finite operands
            metrics = sanitize(metrics)

        m = metrics
        expected_net = round_money(m.total_assets - m.total_liabilities)
        if self._off(m.net_worth, expected_net):
            result.errors.append(
                f"Net worth calculation error: {m.net_worth} != "
                f"{m.total_assets} - {m.total_liabilities} ({expected_net})"
            )

        expected_flow = round_money(m.monthly_income - m.monthly_expenses)
        if self._off(m.monthly_cash_flow, expected_flow):
            result.errors.append(
                f"Cash flow calculation error: {m.monthly_cash_flow} != {m.monthly_income} - {m.monthly_expenses} "
                f"({expected_flow})"
            )

        asset_sum = sum_money(m.assets_by_type.values())
        if self._off(asset_sum, m.total_assets):
            result.errors.append(f"Asset buckets sum to {asset_sum}, total assets is {m.total_assets}")
        liability_sum = sum_money(m.liabilities_by_type.values())
        if self._off(liability_sum, m.total_liabilities):
            result.errors.append(
                f"Liability buckets sum to {liability_sum}, total liabilities is {m.total_liabilities}"
            )

        for name in ("liquid_assets", "investments", "crypto_balance", "real_estate", "pension"):
            value = getattr(m, name)
            if value - m.total_assets > self.tolerance:
                result.errors.append(f"{name} ({value}) cannot exceed total assets ({m.total_assets})")

        if m.total_assets < 0:
            result.hard_violations.append(f"Total assets cannot be negative: {m.total_assets}")
        if m.total_liabilities < 0:
            result.hard_violations.append(f"Total liabilities cannot be negative: {m.total_liabilities}")
        for name in MONEY_FIELDS:
            value = getattr(m, name)
            if abs(value) > self.max_abs_total:
                result.hard_violations.append(f"{name} magnitude {value} exceeds sanity bound {self.max_abs_total}")

        if m.monthly_expenses > m.monthly_income * 2:
            result.warnings.append(
                f"Monthly expenses ({m.monthly_expenses}) are more than 2x monthly income ({m.monthly_income})"
            )
        if m.monthly_expenses > 0 and m.liquid_assets < m.monthly_expenses / 2:
            months = m.liquid_assets / m.monthly_expenses
            result.warnings.append(f"Low liquid assets: only {months:.1f} months of expenses")

        return result

    def enforce(self, metrics: MetricsSummary, context: str = "metrics") -> tuple[MetricsSummary, ValidationResult]:
        """Validate, log, and return a flagged copy safe to display.

        Raises:
            SanityBoundError: when a hard sanity bound is exceeded.
        """
        result = self.validate(metrics, context)
        checked = sanitize(metrics) if result.sanitized_fields else dataclasses.replace(metrics)
        checked.flags = [*metrics.flags, *result.flags]

        if result.sanitized_fields:
            logger.warning(f"Non-finite values in {context} replaced with 0: {', '.join(result.sanitized_fields)}")
        for error in result.errors:
            logger.warning(f"Financial invariant violated in {context}: {error} | metrics={metrics.to_dict()}")
        if result.warnings:
            logger.info(f"Financial warnings in {context}: {result.warnings}")

        if result.hard_violations:
            logger.error(f"Sanity bound violated in {context}: {result.hard_violations}")
            raise SanityBoundError(context, result)
        return checked, result


def sanitize(metrics: MetricsSummary) -> MetricsSummary:
    """Copy of *metrics* with every non-finite money value replaced by zero."""
    changes = {name: ZERO for name in MONEY_FIELDS if not is_finite(getattr(metrics, name))}
    changes["assets_by_type"] = {k: v if is_finite(v) else ZERO for k, v in metrics.assets_by_type.items()}
    changes["liabilities_by_type"] = {k: v if is_finite(v) else ZERO for k, v in metrics.liabilities_by_type.items()}
    return dataclasses.replace(metrics, **changes)
