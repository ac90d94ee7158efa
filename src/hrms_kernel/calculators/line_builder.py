"""Payslip line projection with idempotent hashing."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from hrms_kernel.calculators.money import ZERO, round_to_cents
from hrms_kernel.calculators.types import LineType

if TYPE_CHECKING:
    from hrms_kernel.calculators.engine import PayrollItemResult


@dataclass(frozen=True)
class PayslipLine:
    """One printed payslip line."""

    line_type: LineType
    code: str
    description: str
    amount: Decimal
    quantity: Decimal | None = None
    rate: Decimal | None = None

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for hashing (deterministic ordering)."""
        return {
            "line_type": self.line_type.value,
            "code": self.code,
            "amount": str(self.amount),
            "quantity": str(self.quantity) if self.quantity is not None else None,
            "rate": str(self.rate) if self.rate is not None else None,
        }


class PayslipLineBuilder:
    """Builds payslip lines from a computed payroll item.

    Sign conventions:
    - EARNING, REIMBURSEMENT: positive
    - STATUTORY, TAX, DEDUCTION (employee): negative
    - EMPLOYER_CONTRIBUTION: positive (liability, not part of net)

    Zero-amount lines are omitted so the slip only shows what applies.
    """

    EARNINGS = (
        ("BASIC", "Basic salary", "basic"),
        ("COMM", "Commission", "commission"),
        ("ALLOW", "Fixed allowance", "fixed_allowance"),
        ("OT", "Overtime", "overtime_amount"),
        ("PH", "Public holiday pay", "ph_pay"),
        ("BONUS", "Bonus", "bonus"),
        ("INCENT", "Incentive", "incentive"),
    )
    EMPLOYEE_DEDUCTIONS = (
        ("EPF_EE", "EPF (employee)", "epf_ee", LineType.STATUTORY),
        ("SOCSO_EE", "SOCSO (employee)", "socso_ee", LineType.STATUTORY),
        ("EIS_EE", "EIS (employee)", "eis_ee", LineType.STATUTORY),
        ("PCB", "PCB", "pcb", LineType.TAX),
        ("UNPAID", "Unpaid leave", "unpaid_leave_deduction", LineType.DEDUCTION),
        ("OTHER", "Other deductions", "other_deductions", LineType.DEDUCTION),
        ("ADVANCE", "Salary advance", "advance_deducted", LineType.DEDUCTION),
    )
    EMPLOYER_CONTRIBUTIONS = (
        ("EPF_ER", "EPF (employer)", "epf_er"),
        ("SOCSO_ER", "SOCSO (employer)", "socso_er"),
        ("EIS_ER", "EIS (employer)", "eis_er"),
    )

    @staticmethod
    def compute_line_hash(line: PayslipLine) -> str:
        """Deterministic hash over the line's defining fields."""
        json_str = json.dumps(line.to_canonical_dict(), sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    @classmethod
    def build(cls, item: PayrollItemResult) -> list[PayslipLine]:
        lines: list[PayslipLine] = []
        for code, description, attr in cls.EARNINGS:
            amount = getattr(item, attr)
            if amount > 0:
                lines.append(
                    PayslipLine(LineType.EARNING, code, description, round_to_cents(amount))
                )
        if item.claims > 0:
            lines.append(
                PayslipLine(LineType.REIMBURSEMENT, "CLAIMS", "Claims", round_to_cents(item.claims))
            )
        for code, description, attr, line_type in cls.EMPLOYEE_DEDUCTIONS:
            amount = getattr(item, attr)
            if amount > 0:
                lines.append(PayslipLine(line_type, code, description, -round_to_cents(amount)))
        for code, description, attr in cls.EMPLOYER_CONTRIBUTIONS:
            amount = getattr(item, attr)
            if amount > 0:
                lines.append(
                    PayslipLine(
                        LineType.EMPLOYER_CONTRIBUTION, code, description, round_to_cents(amount)
                    )
                )
        return lines

    @staticmethod
    def net_from_lines(lines: list[PayslipLine]) -> Decimal:
        """Net pay implied by the employee-side lines."""
        return sum(
            (line.amount for line in lines if line.line_type != LineType.EMPLOYER_CONTRIBUTION),
            ZERO,
        )
