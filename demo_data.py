"""
Demo Data Generator
===================

Generate realistic sample data for attribution demos.

Creates:
- 10 won opportunities closed over the last 60 days (SaaS B2B deals)
- 3-7 activities per opportunity spread over the weeks before close
- 2 open opportunities that never show up in attribution
"""

import random
from datetime import datetime, timedelta
from typing import Optional

from db import Database
from repository import TouchpointRepository

DEMO_TENANT_ID = "ORG001"

DEMO_OPPORTUNITIES = [
    ("OPP-001", "Acme Corp - Platform Expansion", 120000, "WEB_FORM"),
    ("OPP-002", "TechStart Inc - Starter Plan", 18000, "REFERRAL"),
    ("OPP-003", "CloudScale Systems - Data Migration", 95000, "EVENT"),
    ("OPP-004", "DataFlow Solutions - Analytics Add-on", 42000, None),
    ("OPP-005", "SecureNet Ltd - Security Suite", 76000, "LINKEDIN"),
    ("OPP-006", "InnovateCo - Enterprise Renewal", 150000, "EMAIL"),
    ("OPP-007", "GlobalTech Partners - Pilot", 12000, "PHONE"),
    ("OPP-008", "FutureOps Inc - Automation Bundle", 58000, "ADVERTISING"),
    ("OPP-009", "SmartData Corp - Reporting Seats", 24000, None),
    ("OPP-010", "AgileWorks LLC - Team Upgrade", 33000, "SOCIAL_MEDIA"),
]

ACTIVITY_SUBJECTS = {
    "EMAIL": ["Intro email", "Follow-up on pricing", "Case study shared", "Security questionnaire"],
    "CALL": ["Discovery call", "Champion check-in", "Procurement call"],
    "MEETING": ["Product demo", "Technical deep dive", "Executive alignment"],
    "TASK": ["Prepare business case", "Send reference list"],
    "NOTE": ["Budget confirmed", "Competitor evaluated"],
    "QUOTE_SENT": ["Quote v1 sent", "Revised quote sent"],
}

OWNERS = ["rep-ana", "rep-ben", "rep-chloe"]


def seed_demo_data(db: Database, seed: int = 42, today: Optional[datetime] = None) -> int:
    """
    Insert demo opportunities and activities.

    Returns the number of won opportunities created.
    """
    rng = random.Random(seed)
    today = today or datetime.now().replace(hour=12, minute=0, second=0, microsecond=0)
    repository = TouchpointRepository(db)

    for i, (opp_id, name, amount, lead_source) in enumerate(DEMO_OPPORTUNITIES):
        close_date = today - timedelta(days=rng.randint(1, 60))
        created_at = close_date - timedelta(days=rng.randint(20, 45))

        repository.add_opportunity(
            tenant_id=DEMO_TENANT_ID,
            opportunity_id=opp_id,
            name=name,
            amount=amount,
            status="WON",
            stage="Closed Won",
            owner_id=OWNERS[i % len(OWNERS)],
            lead_source=lead_source,
            created_at=created_at,
            actual_close_date=close_date.date().isoformat()
        )

        span_days = (close_date - created_at).days
        for j in range(rng.randint(3, 7)):
            activity_type = rng.choice(list(ACTIVITY_SUBJECTS.keys()))
            repository.add_activity(
                opportunity_id=opp_id,
                activity_type=activity_type,
                created_at=created_at + timedelta(days=rng.randint(0, span_days), hours=rng.randint(0, 8)),
                subject=rng.choice(ACTIVITY_SUBJECTS[activity_type]),
                activity_id=f"{opp_id}-ACT-{j + 1:02d}"
            )

    # Open pipeline, never attributed
    for opp_id, name, amount in [("OPP-101", "Dune Retail - Evaluation", 64000), ("OPP-102", "Canyon Bank - POC", 210000)]:
        repository.add_opportunity(
            tenant_id=DEMO_TENANT_ID,
            opportunity_id=opp_id,
            name=name,
            amount=amount,
            status="OPEN",
            stage="Evaluation",
            created_at=today - timedelta(days=10)
        )
        repository.add_activity(opp_id, "MEETING", today - timedelta(days=5), subject="Product demo")

    return len(DEMO_OPPORTUNITIES)
