"""
Cobros CRM - Reminder Scheduler Tests
Creation / assignment / re-targeting / roll-forward / poller query.
Run: cd backend && pytest tests/test_reminder_scheduler.py -v
"""

import pytest
from datetime import date, datetime, timedelta, timezone

from models import ContractUpdate, ClientUpdate, ReminderCreate, ReminderUpdate
from services.contract_lifecycle import update_contract, update_client
from services.due_dates import to_local, to_storage
from services.errors import ValidationError, InvalidTransitionError
from services.reminder_scheduler import (
    schedule_contract_reminder,
    schedule_next_occurrence,
    acknowledge_reminder,
    update_reminder,
    create_manual_reminder,
    list_due_reminders,
    new_reminder_doc,
)


async def active_reminders(db, contract_id):
    return await db.reminders.find(
        {"contract_id": contract_id, "deleted_at": None}, {"_id": 0}
    ).sort("scheduled_for", 1).to_list(100)


class TestContractCreation:
    """Contract created -> one pending reminder at the due date, 09:00 local"""

    async def test_due_date_computed_and_reminder_created(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, anchor=date(2026, 1, 15))

        assert contract["next_due_date"] == "2026-02-15"
        stored = await db.contracts.find_one({"id": contract["id"]})
        assert stored["next_due_date"] == "2026-02-15"

        reminders = await active_reminders(db, contract["id"])
        assert len(reminders) == 1
        reminder = reminders[0]
        assert reminder["status"] == "pending"
        assert reminder["client_id"] == client["id"]
        local = to_local(reminder["scheduled_for"])
        assert local.date() == date(2026, 2, 15)
        assert (local.hour, local.minute) == (9, 0)

    async def test_payload_carries_amount_and_recurrence(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, amount=12500, next_due_date=date(2026, 3, 1))

        reminder = (await active_reminders(db, contract["id"]))[0]
        assert reminder["payload"]["amount"] == "12500.0"
        assert reminder["payload"]["currency"] == "CRC"
        assert reminder["payload"]["recurrence"] == "monthly"

    async def test_explicit_due_date_kept(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, next_due_date=date(2026, 4, 30), anchor=date(2026, 1, 1))
        assert contract["next_due_date"] == "2026-04-30"

    async def test_unassigned_contract_gets_no_reminder(self, db, make_contract):
        contract = await make_contract(None, anchor=date(2026, 1, 15))
        assert await active_reminders(db, contract["id"]) == []

    async def test_scheduler_never_double_creates(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, next_due_date=date(2026, 2, 15))

        await schedule_contract_reminder(contract)
        await schedule_contract_reminder(contract)

        assert len(await active_reminders(db, contract["id"])) == 1


class TestAssignment:
    """Assign-later workflow"""

    async def test_assign_contract_schedules_reminder(self, db, make_client, make_contract):
        contract = await make_contract(None, next_due_date=date(2026, 2, 15))
        client = await make_client()

        await update_contract(contract["id"], ContractUpdate(client_id=client["id"]))

        reminders = await active_reminders(db, contract["id"])
        assert len(reminders) == 1
        assert reminders[0]["client_id"] == client["id"]

        events = await db.event_log.find({"action": "contract_assign"}).to_list(10)
        assert len(events) == 1

    async def test_assign_through_client_update(self, db, make_client, make_contract):
        contract = await make_contract(None, next_due_date=date(2026, 2, 15))
        client = await make_client()

        await update_client(client["id"], ClientUpdate(contract_id=contract["id"]))

        stored = await db.contracts.find_one({"id": contract["id"]})
        assert stored["client_id"] == client["id"]
        assert len(await active_reminders(db, contract["id"])) == 1

    async def test_assign_through_client_create(self, db, make_client, make_contract):
        contract = await make_contract(None, next_due_date=date(2026, 2, 15))
        client = await make_client(contract_id=contract["id"])

        reminders = await active_reminders(db, contract["id"])
        assert len(reminders) == 1
        assert reminders[0]["client_id"] == client["id"]

    async def test_reassign_to_other_client_rejected(self, db, make_client, make_contract):
        owner = await make_client()
        other = await make_client(name="Luis Mora")
        contract = await make_contract(owner, next_due_date=date(2026, 2, 15))

        with pytest.raises(ValidationError) as exc:
            await update_contract(contract["id"], ContractUpdate(client_id=other["id"]))
        assert exc.value.field == "client_id"

        stored = await db.contracts.find_one({"id": contract["id"]})
        assert stored["client_id"] == owner["id"]

    async def test_existing_reminder_retargeted_not_duplicated(self, db, make_client, make_contract):
        """A reminder left on an unassigned contract is re-targeted on assignment"""
        contract = await make_contract(None, next_due_date=date(2026, 2, 15))
        orphan = new_reminder_doc(contract, datetime(2026, 2, 1, 9, 0, tzinfo=timezone.utc))
        await db.reminders.insert_one(orphan)

        client = await make_client()
        await update_contract(contract["id"], ContractUpdate(client_id=client["id"]))

        reminders = await active_reminders(db, contract["id"])
        assert len(reminders) == 1
        assert reminders[0]["id"] == orphan["id"]
        assert reminders[0]["client_id"] == client["id"]
        assert to_local(reminders[0]["scheduled_for"]).date() == date(2026, 2, 15)


class TestContractUpdateHook:
    """Contract updated -> pending reminders follow"""

    async def test_due_date_change_retargets_pending(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, next_due_date=date(2026, 2, 15))

        await update_contract(contract["id"], ContractUpdate(next_due_date=date(2026, 2, 20)))

        reminder = (await active_reminders(db, contract["id"]))[0]
        local = to_local(reminder["scheduled_for"])
        assert local.date() == date(2026, 2, 20)
        assert local.hour == 9

    async def test_amount_and_cycle_change_sync_payload(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, next_due_date=date(2026, 2, 15))

        await update_contract(contract["id"], ContractUpdate(amount=45000, billing_cycle="weekly"))

        reminder = (await active_reminders(db, contract["id"]))[0]
        assert reminder["payload"]["amount"] == "45000.0"
        assert reminder["payload"]["recurrence"] == "weekly"

    async def test_sent_reminder_not_moved(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, next_due_date=date(2026, 2, 15))
        reminder = (await active_reminders(db, contract["id"]))[0]
        await db.reminders.update_one({"id": reminder["id"]}, {"$set": {"status": "sent"}})

        await update_contract(contract["id"], ContractUpdate(next_due_date=date(2026, 2, 20)))

        stored = await db.reminders.find_one({"id": reminder["id"]})
        assert stored["scheduled_for"] == reminder["scheduled_for"]


class TestAcknowledge:
    """Poller acknowledge + roll-forward of recurring reminders"""

    async def test_sent_creates_next_occurrence(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, next_due_date=date(2026, 2, 15))
        reminder = (await active_reminders(db, contract["id"]))[0]

        acked = await acknowledge_reminder(reminder["id"], status="sent", response_payload={"wa_id": "x1"})

        assert acked["status"] == "sent"
        assert acked["sent_at"]
        assert acked["attempts"] == 1
        assert acked["response_payload"] == {"wa_id": "x1"}

        reminders = await active_reminders(db, contract["id"])
        assert [r["status"] for r in reminders] == ["sent", "pending"]
        following = to_local(reminders[1]["scheduled_for"])
        assert following.date() == date(2026, 3, 15)
        assert following.hour == 9

        stored = await db.contracts.find_one({"id": contract["id"]})
        assert stored["next_due_date"] == "2026-03-15"

    async def test_acknowledge_twice_is_idempotent(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, next_due_date=date(2026, 2, 15))
        reminder = (await active_reminders(db, contract["id"]))[0]

        await acknowledge_reminder(reminder["id"], status="sent")
        await acknowledge_reminder(reminder["id"], status="sent")
        sent = await db.reminders.find_one({"id": reminder["id"]}, {"_id": 0})
        assert await schedule_next_occurrence(sent) is None

        assert len(await active_reminders(db, contract["id"])) == 2

    async def test_queued_then_sent(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, next_due_date=date(2026, 2, 15))
        reminder = (await active_reminders(db, contract["id"]))[0]

        queued = await acknowledge_reminder(reminder["id"], status="queued")
        assert queued["queued_at"]
        await acknowledge_reminder(reminder["id"], status="sent")

        assert len(await active_reminders(db, contract["id"])) == 2

    async def test_one_time_contract_does_not_roll_forward(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, billing_cycle="one_time", next_due_date=date(2026, 2, 15))
        reminder = (await active_reminders(db, contract["id"]))[0]

        await acknowledge_reminder(reminder["id"], status="sent")

        assert len(await active_reminders(db, contract["id"])) == 1

    async def test_paid_cannot_be_acknowledged(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, next_due_date=date(2026, 2, 15))
        reminder = (await active_reminders(db, contract["id"]))[0]

        with pytest.raises(ValidationError) as exc:
            await acknowledge_reminder(reminder["id"], status="paid")
        assert exc.value.field == "status"

        stored = await db.reminders.find_one({"id": reminder["id"]})
        assert stored["status"] == "pending"

    async def test_terminal_status_blocks_transition(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, next_due_date=date(2026, 2, 15))
        reminder = (await active_reminders(db, contract["id"]))[0]

        await update_reminder(reminder["id"], ReminderUpdate(status="cancelled"))

        with pytest.raises(InvalidTransitionError):
            await acknowledge_reminder(reminder["id"], status="sent")


class TestManualReminder:
    async def test_client_must_match_contract(self, make_client, make_contract):
        owner = await make_client()
        other = await make_client(name="Luis Mora")
        contract = await make_contract(owner, next_due_date=date(2026, 2, 15))

        with pytest.raises(ValidationError):
            await create_manual_reminder(ReminderCreate(
                contract_id=contract["id"],
                client_id=other["id"],
                scheduled_for=datetime(2026, 5, 10, 10, 0),
            ))

    async def test_one_time_keeps_requested_instant(self, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, billing_cycle="one_time", next_due_date=date(2026, 2, 15))

        reminder = await create_manual_reminder(ReminderCreate(
            contract_id=contract["id"],
            client_id=client["id"],
            scheduled_for=datetime(2031, 5, 10, 10, 30),
        ))
        local = to_local(reminder["scheduled_for"])
        assert local.date() == date(2031, 5, 10)
        assert (local.hour, local.minute) == (10, 30)

    async def test_monthly_uses_day_of_month_from_today(self, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, next_due_date=date(2026, 2, 15))

        reminder = await create_manual_reminder(ReminderCreate(
            contract_id=contract["id"],
            client_id=client["id"],
            scheduled_for=datetime(2020, 1, 28, 8, 15),
        ))
        local = to_local(reminder["scheduled_for"])
        today = datetime.now(local.tzinfo).date()
        assert local.day == 28
        assert local.date() >= today
        assert (local.hour, local.minute) == (8, 15)
        assert reminder["payload"]["amount"] == "30000.0"


class TestPendingPoll:
    """GET pending reminders due before now + look_ahead"""

    async def test_due_window_and_order(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, next_due_date=date(2099, 1, 1))
        now = datetime.now(timezone.utc)

        late = new_reminder_doc(contract, now - timedelta(hours=1))
        soon = new_reminder_doc(contract, now + timedelta(minutes=10), status="queued")
        later = new_reminder_doc(contract, now + timedelta(hours=2))
        sent = new_reminder_doc(contract, now - timedelta(hours=3), status="sent")
        for doc in (soon, later, late, sent):
            await db.reminders.insert_one(doc)

        due = await list_due_reminders(look_ahead_minutes=30)
        assert [r["id"] for r in due] == [late["id"], soon["id"]]

    async def test_limit_is_clamped(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, next_due_date=date(2099, 1, 1))
        now = datetime.now(timezone.utc)
        for minutes in range(5):
            await db.reminders.insert_one(new_reminder_doc(contract, now - timedelta(minutes=minutes + 1)))

        assert len(await list_due_reminders(limit=0)) == 1
        assert len(await list_due_reminders(limit=500)) == 5

    async def test_deleted_reminders_excluded(self, db, make_client, make_contract):
        client = await make_client()
        contract = await make_contract(client, next_due_date=date(2099, 1, 1))
        doc = new_reminder_doc(contract, datetime.now(timezone.utc) - timedelta(minutes=5))
        doc["deleted_at"] = to_storage(datetime.now(timezone.utc))
        await db.reminders.insert_one(doc)

        assert await list_due_reminders() == []
