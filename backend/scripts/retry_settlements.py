"""
Cobros CRM - Re-run settlement for every approved conciliation.
Safe to run any number of times: reminders already settled are skipped.

Run: cd backend && python3 scripts/retry_settlements.py [--payment <payment_id>]
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import client, db
from services.settlement import settle_payment


async def retry(payment_id: str = None):
    query = {"status": "approved"}
    if payment_id:
        query["payment_id"] = payment_id

    conciliations = await db.conciliations.find(query, {"_id": 0}).to_list(10000)
    print(f"Approved conciliations: {len(conciliations)}")

    settled = 0
    failed = 0
    errors = []

    for conciliation in conciliations:
        payment = await db.payments.find_one(
            {"id": conciliation["payment_id"], "deleted_at": None}, {"_id": 0}
        )
        if not payment:
            continue

        try:
            summary = await settle_payment(payment, conciliation, user="retry_settlements")
        except Exception as e:
            errors.append({"payment": payment["id"][:8], "error": str(e)})
            continue

        settled += len(summary["settled"])
        failed += len(summary["failed"])
        if summary["settled"]:
            print(f"  {payment['id'][:8]}: {len(summary['settled'])} reminder(s) settled")

    print(f"\nReminders settled: {settled}")
    print(f"Reminders failed:  {failed}")
    if errors:
        print(f"Passes in error:   {len(errors)}")
        for err in errors[:20]:
            print(f"  {err['payment']}: {err['error']}")

    return settled


async def main():
    payment_id = None
    if "--payment" in sys.argv:
        payment_id = sys.argv[sys.argv.index("--payment") + 1]

    await retry(payment_id)
    client.close()


if __name__ == "__main__":
    asyncio.run(main())
