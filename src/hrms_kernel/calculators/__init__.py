"""Statutory payroll calculators."""

from hrms_kernel.calculators.contributions import calculate_contributions
from hrms_kernel.calculators.engine import PayrollAssembler, PayrollItemResult, reconcile_with_slip
from hrms_kernel.calculators.identity import parse_identity
from hrms_kernel.calculators.line_builder import PayslipLineBuilder
from hrms_kernel.calculators.pcb import PCBCalculator

__all__ = [
    "PayrollAssembler",
    "PayrollItemResult",
    "PayslipLineBuilder",
    "PCBCalculator",
    "calculate_contributions",
    "parse_identity",
    "reconcile_with_slip",
]
