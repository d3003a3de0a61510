"""Standard leave catalogue seeded per company by ``POST /types/defaults``.

Each entry is ``(leave type columns, policy columns)``. A policy's
``max_consecutive_days`` counts working days.
"""

from __future__ import annotations

from hrops.common.constants import GenderType

DEFAULT_LEAVE_CATALOGUE: list[tuple[dict, dict]] = [
    (
        dict(name="Privilege/Earned Leave (PL/EL)",
             description="Accrues monthly for planned vacations or personal time off",
             requires_documentation=False, max_days=18, is_paid=True),
        dict(default_days=18, carry_forward_days=30, min_service_days=180,
             notice_period_days=7, max_consecutive_days=15),
    ),
    (
        dict(name="Casual Leave (CL)",
             description="For urgent or unforeseen personal matters",
             requires_documentation=False, max_days=12, is_paid=True),
        dict(default_days=12, carry_forward_days=0, min_service_days=90,
             notice_period_days=1, max_consecutive_days=3),
    ),
    (
        dict(name="Sick Leave (SL)",
             description="For health-related absences",
             requires_documentation=True, max_days=12, is_paid=True),
        dict(default_days=12, carry_forward_days=0, min_service_days=90,
             notice_period_days=0, max_consecutive_days=5),
    ),
    (
        dict(name="Maternity Leave (ML)",
             description="For pre- and post-natal care",
             requires_documentation=True, max_days=90, is_paid=True),
        dict(default_days=90, carry_forward_days=0, min_service_days=180,
             notice_period_days=30, max_consecutive_days=90,
             gender_specific=GenderType.female),
    ),
    (
        dict(name="Child Care Leave",
             description="For childcare responsibilities",
             requires_documentation=False, max_days=15, is_paid=True),
        dict(default_days=15, carry_forward_days=0, min_service_days=180,
             notice_period_days=7, max_consecutive_days=15),
    ),
    (
        dict(name="Child Adoption Leave",
             description="For adoptive parents",
             requires_documentation=True, max_days=90, is_paid=True),
        dict(default_days=90, carry_forward_days=0, min_service_days=180,
             notice_period_days=30, max_consecutive_days=90),
    ),
    (
        dict(name="Compensatory Off",
             description="Granted in lieu of extra hours worked",
             requires_documentation=False, max_days=0, is_paid=True),
        dict(default_days=0, carry_forward_days=0, min_service_days=90,
             notice_period_days=1, max_consecutive_days=2),
    ),
    (
        dict(name="Marriage Leave",
             description="For employee's own wedding",
             requires_documentation=True, max_days=5, is_paid=True),
        dict(default_days=5, carry_forward_days=0, min_service_days=180,
             notice_period_days=15, max_consecutive_days=5),
    ),
    (
        dict(name="Paternity Leave",
             description="For male employees following child birth",
             requires_documentation=True, max_days=10, is_paid=True),
        dict(default_days=10, carry_forward_days=0, min_service_days=180,
             notice_period_days=15, max_consecutive_days=10,
             gender_specific=GenderType.male),
    ),
    (
        dict(name="Bereavement Leave",
             description="Upon death of immediate family member",
             requires_documentation=True, max_days=5, is_paid=True),
        dict(default_days=5, carry_forward_days=0, min_service_days=90,
             notice_period_days=0, max_consecutive_days=5),
    ),
    (
        dict(name="Leave Without Pay (LWP)",
             description="Unpaid leave beyond allocated quota",
             requires_documentation=False, max_days=0, is_paid=False),
        dict(default_days=0, carry_forward_days=0, min_service_days=90,
             notice_period_days=7, max_consecutive_days=30),
    ),
    (
        dict(name="Sabbatical Leave",
             description="Extended leave after long service",
             requires_documentation=True, max_days=180, is_paid=False),
        dict(default_days=180, carry_forward_days=0, min_service_days=2555,  # 7 years
             notice_period_days=90, max_consecutive_days=180),
    ),
    (
        dict(name="Half Pay Leave (HPL)",
             description="Leave with half salary",
             requires_documentation=False, max_days=20, is_paid=True),
        dict(default_days=20, carry_forward_days=0, min_service_days=180,
             notice_period_days=7, max_consecutive_days=20),
    ),
    (
        dict(name="Commuted Leave",
             description="Conversion of half pay leave to full pay",
             requires_documentation=True, max_days=10, is_paid=True),
        dict(default_days=10, carry_forward_days=0, min_service_days=180,
             notice_period_days=7, max_consecutive_days=10),
    ),
    (
        dict(name="Leave Not Due (LND)",
             description="Advance leave against future accruals",
             requires_documentation=True, max_days=10, is_paid=True),
        dict(default_days=10, carry_forward_days=0, min_service_days=365,
             notice_period_days=7, max_consecutive_days=10),
    ),
    (
        dict(name="Special Casual Leave (SCL)",
             description="For specific purposes like blood donation, sports events",
             requires_documentation=True, max_days=10, is_paid=True),
        dict(default_days=10, carry_forward_days=0, min_service_days=90,
             notice_period_days=7, max_consecutive_days=10),
    ),
]
