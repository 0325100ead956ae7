"""Exam eligibility derived from the current ledger. Pure; recompute on every read."""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from app.core.enums import ELIGIBILITY_FEE_TYPES

ODD_SEM_MIN_PAID_RATIO = 0.5


@dataclass
class EligibilityResult:
    is_eligible: bool
    eligible_for_odd_sem: bool
    eligible_for_even_sem: bool
    reasons: List[str] = field(default_factory=list)
    total_due: int = 0
    total_paid: int = 0

    @property
    def paid_ratio(self) -> float:
        if self.total_due == 0:
            return 1.0
        return self.total_paid / self.total_due


def _sort_key(record):
    return (record.year, record.semester is None, record.semester or 0, record.fee_type)


def describe_outstanding(record) -> str:
    sem = record.semester if record.semester is not None else "-"
    return f"Year {record.year} Sem {sem} {record.fee_type} fee: {record.amount_due - record.amount_paid} outstanding"


def evaluate_eligibility(student, records: Iterable, semester: Optional[int] = None) -> EligibilityResult:
    """
    Odd-semester exams need at least half of this year's college + transport dues paid;
    even-semester exams need all of it. No dues at all counts as fully paid.
    ``is_eligible`` follows the parity of ``semester`` when given, else the stricter even rule.
    """
    in_scope = sorted(
        (r for r in records if r.fee_type in ELIGIBILITY_FEE_TYPES and r.year == student.current_year),
        key=_sort_key,
    )
    total_due = sum(r.amount_due for r in in_scope)
    total_paid = sum(r.amount_paid for r in in_scope)

    if total_due == 0:
        odd_ok = True
    else:
        odd_ok = total_paid / total_due >= ODD_SEM_MIN_PAID_RATIO
    outstanding = [r for r in in_scope if r.amount_due - r.amount_paid > 0]
    even_ok = not outstanding

    if semester is not None and semester % 2 != 0:
        is_eligible = odd_ok
    else:
        is_eligible = even_ok

    return EligibilityResult(
        is_eligible=is_eligible,
        eligible_for_odd_sem=odd_ok,
        eligible_for_even_sem=even_ok,
        reasons=[describe_outstanding(r) for r in outstanding],
        total_due=total_due,
        total_paid=total_paid,
    )
