"""
Seed the plan catalog with the Basic, Standard and Professional plans.

Existing plans are updated in place by name so organizations and
invoices keep their plan references; plans not in the default catalog
are deactivated.

Usage:
    python scripts/seed_plans.py
"""
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sifapass.database import async_session_maker, close_db, init_db
from sifapass.services.plan_catalog import PlanCatalog


async def seed_plans():
    print("Seeding plan catalog...")
    await init_db()

    async with async_session_maker() as db:
        plans = await PlanCatalog(db).seed_plans()

    print(f"\n{len(plans)} plans seeded:")
    for plan in plans:
        features = plan.features
        events = "unlimited" if features.max_events_per_month == -1 else features.max_events_per_month
        print(f"  - {plan.name}: {plan.price:,} {plan.currency}/{plan.billing_cycle.value}")
        print(f"      participants: {features.max_participants}, events/month: {events}")

    await close_db()


if __name__ == "__main__":
    asyncio.run(seed_plans())
