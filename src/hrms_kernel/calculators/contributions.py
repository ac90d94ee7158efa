"""EPF, SOCSO and EIS contributions for one employee-month."""

from __future__ import annotations

from decimal import ROUND_CEILING, Decimal

from hrms_kernel.calculators.money import ZERO, ceil_to_ringgit
from hrms_kernel.calculators.rule_tables import eis_step, epf_rates, socso_step
from hrms_kernel.calculators.types import ContributionResult, ResidentStatus, StepContribution
from hrms_kernel.config import RuleConfig

# Wages up to this amount are outside the EPF schedule.
EPF_NIL_WAGE = Decimal("10")
EPF_FINE_BAND_LIMIT = Decimal("5000")
EPF_FINE_STEP = Decimal("20")
EPF_COARSE_STEP = Decimal("100")


def _ceil_to_multiple(amount: Decimal, step: Decimal) -> Decimal:
    return (amount / step).quantize(Decimal("1"), rounding=ROUND_CEILING) * step


def epf_bracket_wage(wage: Decimal, ceiling: Decimal) -> Decimal:
    """Upper bound of the EPF schedule band the wage falls in.

    Bands are RM20 wide up to RM5,000 and RM100 wide above; the result never
    exceeds the ceiling.
    """
    capped = min(wage, ceiling)
    if capped <= EPF_NIL_WAGE:
        return ZERO
    step = EPF_FINE_STEP if capped <= EPF_FINE_BAND_LIMIT else EPF_COARSE_STEP
    return min(_ceil_to_multiple(capped, step), ceiling)


def epf_contribution(
    wage: Decimal,
    age: int,
    resident_status: ResidentStatus,
    config: RuleConfig,
) -> StepContribution:
    """EPF employee/employer shares, each rounded up to the ringgit."""
    rates = epf_rates(age, resident_status, wage, config)
    bracket = epf_bracket_wage(wage, rates.ceiling)
    return StepContribution(
        ee=ceil_to_ringgit(bracket * rates.ee_rate),
        er=ceil_to_ringgit(bracket * rates.er_rate),
    )


def calculate_contributions(
    statutory_base: Decimal,
    gross_wage: Decimal,
    age: int,
    resident_status: ResidentStatus,
    config: RuleConfig,
) -> ContributionResult:
    """EPF on the statutory base; SOCSO and EIS on the gross wage.

    The step tables saturate at their own top row; ``socso_eis_wage`` is the
    insured wage reported against ``socso_eis_ceiling``.
    """
    epf = epf_contribution(statutory_base, age, resident_status, config)
    socso = socso_step(gross_wage, age, resident_status)
    eis = eis_step(gross_wage, age, resident_status)
    return ContributionResult(
        epf_wage=epf_bracket_wage(statutory_base, config.epf_ceiling),
        socso_eis_wage=min(gross_wage, config.socso_eis_ceiling),
        epf_ee=epf.ee,
        epf_er=epf.er,
        socso_ee=socso.ee,
        socso_er=socso.er,
        eis_ee=eis.ee,
        eis_er=eis.er,
    )
