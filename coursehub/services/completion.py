"""Completion calculator: pure derivations over an EnrollmentRecord.

Three numbers are derived from the raw counters:

  overall_progress       completed modules / modules
  completion_percentage  (modules + assignments + quizzes) done / total
  final_score            0.4 * avg quiz + 0.6 * avg assignment

Only completion_percentage gates certificate issuance.  overall_progress
is what the UI shows as the progress bar.

All rounding is half-up (49.5 -> 50), not Python's banker's rounding.
Ratios use integer arithmetic so 1/8 and friends round exactly.
"""

from __future__ import annotations

import math
from dataclasses import replace

from coursehub.models.enrollment import EnrollmentRecord


def _percent(done: int, total: int) -> int:
    if total <= 0:
        return 0
    value = (200 * done + total) // (2 * total)
    return max(0, min(100, value))


def overall_progress(record: EnrollmentRecord) -> int:
    return _percent(record.completed_module_count, len(record.module_progress))


def completion_percentage(record: EnrollmentRecord) -> int:
    total = (
        len(record.module_progress) + record.total_assignments + record.total_quizzes
    )
    done = (
        record.completed_module_count
        + record.completed_assignments
        + record.completed_quizzes
    )
    return _percent(done, total)


def final_score(record: EnrollmentRecord, placeholder: int | None) -> int:
    """Weighted score; ``placeholder`` stands in when no scores exist yet.

    A placeholder of None means "no placeholder" and yields 0.
    """
    if record.avg_quiz_score == 0 and record.avg_assignment_score == 0:
        return placeholder if placeholder is not None else 0
    weighted = 0.4 * record.avg_quiz_score + 0.6 * record.avg_assignment_score
    return max(0, min(100, math.floor(weighted + 0.5)))


def recompute(
    record: EnrollmentRecord, *, now: int, placeholder: int | None
) -> EnrollmentRecord:
    """Refresh every derived field.

    completed_at is stamped the first time completion reaches 100 and is
    left alone afterwards, even if completion later drops (e.g. an
    instructor raises total_assignments).
    """
    completion = completion_percentage(record)
    completed_at = record.completed_at
    if completed_at is None and completion >= 100:
        completed_at = now
    return replace(
        record,
        overall_progress=overall_progress(record),
        completion_percentage=completion,
        final_score=final_score(record, placeholder),
        completed_at=completed_at,
    )
