"""Monthly tax deduction (PCB) using the LHDN computerised formula.

The calculator is stateless. Year-to-date figures come in through
``PCBInput.ytd``; the caller is responsible for deriving them from the
months already paid.

Symbols follow the published formula:

    P   = [sum(Y - K) + (Y1 - K1) + (Y1 - K2) * n] - [D + S + Du + Su + QC + LP]
    STD = ([(P - M) * R + B] - (Z + X)) / (n + 1)

where ``n`` is the number of months left after the current one.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from hrms_kernel.calculators.money import ZERO, ceil_to_step, truncate_to_cents
from hrms_kernel.calculators.rule_tables import bracket_tax
from hrms_kernel.calculators.types import PCBInput, PCBResult
from hrms_kernel.config import RuleConfig
from hrms_kernel.exceptions import InputValidationError

logger = logging.getLogger(__name__)


class PCBCalculator:
    """Computes the monthly tax deduction for one employee-month."""

    def __init__(self, config: RuleConfig):
        self.config = config

    def calculate(self, inp: PCBInput) -> PCBResult:
        """Normal STD on Y1 plus additional STD on Yt, rounded to the payable step."""
        if not 1 <= inp.month <= 12:
            raise InputValidationError(f"month {inp.month} out of range", "month")
        if inp.normal_remuneration < 0 or inp.additional_remuneration < 0:
            raise InputValidationError("remuneration must be non-negative", "remuneration")

        cfg = self.config
        n = 12 - inp.month
        divisor = n + 1
        ytd = inp.ytd
        y1 = inp.normal_remuneration
        yt = inp.additional_remuneration

        k_ytd = min(ytd.epf, cfg.epf_relief_cap)
        k1 = max(ZERO, min(inp.epf_on_normal, cfg.epf_relief_cap - k_ytd))
        k2 = self._projected_epf(k_ytd, k1, n)

        reliefs = self._reliefs(inp)
        projected = (ytd.gross - k_ytd) + (y1 - k1) + (y1 - k2) * n
        p_raw = projected - reliefs
        p = max(ZERO, p_raw)

        spouse = inp.claims_spouse_relief
        annual_tax = bracket_tax(p, spouse)
        already_paid = ytd.zakat + ytd.pcb
        normal_std = truncate_to_cents(max(ZERO, (annual_tax - already_paid) / divisor))

        kt = ZERO
        p_additional = None
        additional_std = ZERO
        if yt > 0:
            kt_room = max(ZERO, cfg.epf_relief_cap - k_ytd - k1 - k2 * n)
            kt = min(inp.epf_on_additional, kt_room)
            p_additional = max(ZERO, p_raw + yt - kt)
            additional_std = truncate_to_cents(
                max(
                    ZERO,
                    bracket_tax(p_additional, spouse) - already_paid - normal_std * divisor,
                )
            )

        pcb = self._round_payable(normal_std + additional_std - inp.current_month_zakat)

        logger.debug(
            "PCB month=%d P=%s normal=%s additional=%s pcb=%s",
            inp.month, p, normal_std, additional_std, pcb,
        )
        return PCBResult(
            pcb=pcb,
            normal_std=normal_std,
            additional_std=additional_std,
            chargeable_income=p,
            chargeable_income_additional=p_additional,
            annual_tax=annual_tax,
            k1=k1,
            k2=k2,
            kt=kt,
            reliefs=reliefs,
            remaining_months=n,
        )

    def _projected_epf(self, k_ytd: Decimal, k1: Decimal, n: int) -> Decimal:
        """K2: estimated EPF for each remaining month, never above K1."""
        if n <= 0:
            return ZERO
        room = truncate_to_cents((self.config.epf_relief_cap - k_ytd - k1) / n)
        return max(ZERO, min(k1, room))

    def _reliefs(self, inp: PCBInput) -> Decimal:
        cfg = self.config
        total = cfg.individual_relief
        if inp.disabled:
            total += cfg.disabled_relief
        if inp.claims_spouse_relief:
            total += cfg.spouse_relief
            if inp.spouse_disabled:
                total += cfg.disabled_spouse_relief
        total += cfg.child_relief_each * inp.children_count
        total += inp.life_insurance_relief
        lp = inp.ytd.socso_eis + inp.socso_eis_current
        total += min(lp, cfg.socso_relief_cap + cfg.eis_relief_cap)
        return total

    def _round_payable(self, amount: Decimal) -> Decimal:
        """Truncate to cents, round up to the step, drop anything under the minimum."""
        if amount <= 0:
            return ZERO
        rounded = ceil_to_step(truncate_to_cents(amount), self.config.pcb_round_step)
        if rounded < self.config.pcb_min_payable:
            return ZERO
        return rounded
