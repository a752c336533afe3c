"""Payroll computation against the database.

Covers the create / correct / skip paths, idempotency of repeated runs and
disjointness of the time logs claimed by payments.
"""

from datetime import datetime, time
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from workforce_payroll.calculators.engine import PayrollEngine
from workforce_payroll.calculators.rate_resolver import RateResolver
from workforce_payroll.calculators.types import PaymentOutcome
from workforce_payroll.errors import InvalidStateError, NotFoundError
from workforce_payroll.events import PaymentCorrected, PaymentCreated, PayrollRunCompleted
from workforce_payroll.models import Payment, PaymentTimeLog, TimeLog
from workforce_payroll.services.commit_service import CommitService
from workforce_payroll.services.payment_service import PaymentService

pytestmark = pytest.mark.asyncio

DAY_START = datetime(2026, 1, 15, 0, 0)
DAY_END = datetime.combine(DAY_START.date(), time.max)


async def _run(session, clock, emitter, company, start=DAY_START, end=DAY_END, **kwargs):
    engine = PayrollEngine(session, clock, emitter)
    return await engine.compute_payroll(company.company_id, start, end, **kwargs)


async def _payment_count(session) -> int:
    return await session.scalar(select(func.count()).select_from(Payment))


class TestEndToEnd:
    """A single approved log becomes a single pending payment."""

    async def test_regular_bonus_and_role_bonus(
        self, session, clock, emitter, company, employee, make_log
    ):
        """8 regular hours at 25, 2 bonus hours at 37.5, plus a 100 role bonus."""
        log = await make_log(employee, datetime(2026, 1, 15, 8, 0), hours=10)
        await session.commit()

        run = await _run(session, clock, emitter, company)
        await session.commit()

        assert run.count(PaymentOutcome.CREATED) == 1
        assert run.total_amount == Decimal("375.00")
        row = run.results[0]
        assert row.regular_hours == Decimal("8")
        assert row.bonus_hours == Decimal("2")
        assert row.regular_pay == Decimal("200.00")
        assert row.bonus_pay == Decimal("175.00")
        assert (row.period_start, row.period_end) == (DAY_START, DAY_END)

        payment = await session.get(Payment, row.payment_id)
        assert payment.amount == Decimal("375.00")
        assert payment.status == "pending"
        assert payment.hourly_rate == Decimal("25")
        assert payment.covered_log_ids == [log.time_log_id]

        await session.refresh(log)
        assert log.status == "paid"

        claim = await session.get(PaymentTimeLog, log.time_log_id)
        assert claim.payment_id == payment.payment_id

    async def test_run_emits_events(
        self, session, clock, emitter, events, company, employee, make_log
    ):
        await make_log(employee, datetime(2026, 1, 15, 8, 0), hours=4)
        await session.commit()

        await _run(session, clock, emitter, company)

        created = [event for event in events if isinstance(event, PaymentCreated)]
        completed = [event for event in events if isinstance(event, PayrollRunCompleted)]
        assert len(created) == 1
        assert created[0].amount == Decimal("200.00")
        assert created[0].metadata.company_id == company.company_id
        assert len(completed) == 1
        assert completed[0].created_count == 1
        assert completed[0].total_amount == Decimal("200.00")

    async def test_one_payment_per_day(
        self, session, clock, emitter, company, hourly_employee, make_log
    ):
        await make_log(hourly_employee, datetime(2026, 1, 14, 9, 0), hours=4)
        await make_log(hourly_employee, datetime(2026, 1, 14, 14, 0), hours=2)
        await make_log(hourly_employee, datetime(2026, 1, 15, 9, 0), hours=3)
        await session.commit()

        run = await _run(session, clock, emitter, company, start=datetime(2026, 1, 14))

        assert run.count(PaymentOutcome.CREATED) == 2
        by_day = {row.period_start.date(): row for row in run.results}
        assert by_day[datetime(2026, 1, 14).date()].total_pay == Decimal("120.00")
        assert by_day[datetime(2026, 1, 14).date()].time_log_count == 2
        assert by_day[datetime(2026, 1, 15).date()].total_pay == Decimal("60.00")
        assert run.employees_with_payments == 1


class TestIdempotency:
    """Repeated runs never pay a log twice."""

    async def test_repeat_run_creates_nothing(
        self, session, clock, emitter, company, employee, make_log
    ):
        await make_log(employee, datetime(2026, 1, 15, 8, 0), hours=10)
        await session.commit()

        first = await _run(session, clock, emitter, company)
        await session.commit()
        second = await _run(session, clock, emitter, company)
        await session.commit()

        assert first.count(PaymentOutcome.CREATED) == 1
        assert second.results == []
        assert await _payment_count(session) == 1

    async def test_repeat_run_in_a_new_session(
        self, session, session_factory, clock, emitter, company, employee, make_log
    ):
        await make_log(employee, datetime(2026, 1, 15, 8, 0), hours=10)
        await session.commit()

        await _run(session, clock, emitter, company)
        await session.commit()

        async with session_factory() as other:
            rerun = await _run(other, clock, emitter, company)
            await other.commit()

        assert rerun.count(PaymentOutcome.CREATED) == 0
        assert await _payment_count(session) == 1

    async def test_duplicate_insert_falls_back_to_existing_payment(
        self, session, clock, emitter, company, hourly_employee, make_log, monkeypatch
    ):
        """A writer that loses the insert race corrects the winner's payment."""
        first_log = await make_log(hourly_employee, datetime(2026, 1, 15, 8, 0), hours=4)
        await session.commit()
        first = await _run(session, clock, emitter, company)
        await session.commit()

        second_log = await make_log(hourly_employee, datetime(2026, 1, 15, 13, 0), hours=3)
        await session.commit()

        original = CommitService.find_existing
        calls = {"count": 0}

        async def stale_find_existing(self, *args, **kwargs):
            # First lookup misses, as if the other writer had not committed yet
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return await original(self, *args, **kwargs)

        monkeypatch.setattr(CommitService, "find_existing", stale_find_existing)

        run = await _run(session, clock, emitter, company)
        await session.commit()

        assert run.error_count == 0
        assert run.count(PaymentOutcome.UPDATED) == 1
        assert await _payment_count(session) == 1

        payment = await session.get(Payment, first.results[0].payment_id)
        await session.refresh(payment)
        assert payment.amount == Decimal("140.00")
        assert set(payment.covered_log_ids) == {first_log.time_log_id, second_log.time_log_id}

    async def test_claimed_logs_are_disjoint(
        self, session, clock, emitter, company, employee, hourly_employee, make_log
    ):
        for day in (13, 14, 15):
            await make_log(employee, datetime(2026, 1, day, 8, 0), hours=9)
            await make_log(hourly_employee, datetime(2026, 1, day, 8, 0), hours=5)
        await session.commit()

        start = datetime(2026, 1, 13)
        await _run(session, clock, emitter, company, start=start)
        await session.commit()
        await make_log(hourly_employee, datetime(2026, 1, 15, 15, 0), hours=1)
        await session.commit()
        await _run(session, clock, emitter, company, start=start)
        await session.commit()

        payments = (await session.execute(select(Payment))).scalars().all()
        covered = [log_id for payment in payments for log_id in payment.time_log_ids]
        assert len(covered) == len(set(covered)) == 7

        claims = await session.scalar(select(func.count()).select_from(PaymentTimeLog))
        assert claims == 7


class TestSelection:
    """Only approved, closed, unclaimed logs with hours are paid."""

    async def test_zero_hour_logs_create_no_payment(
        self, session, clock, emitter, company, employee, make_log
    ):
        log = await make_log(employee, datetime(2026, 1, 15, 8, 0), hours=0)
        await session.commit()

        run = await _run(session, clock, emitter, company)

        assert run.results == []
        assert await _payment_count(session) == 0
        await session.refresh(log)
        assert log.status == "approved"

    async def test_pending_and_open_logs_are_ignored(
        self, session, clock, emitter, company, employee, make_log
    ):
        await make_log(employee, datetime(2026, 1, 15, 8, 0), hours=6, status="pending")
        session.add(
            TimeLog(
                employee_id=employee.employee_id,
                clock_in=datetime(2026, 1, 15, 16, 0),
                status="approved",
            )
        )
        await session.commit()

        run = await _run(session, clock, emitter, company)

        assert run.results == []
        assert await _payment_count(session) == 0

    async def test_logs_outside_window_are_ignored(
        self, session, clock, emitter, company, employee, make_log
    ):
        await make_log(employee, datetime(2026, 1, 14, 23, 0), hours=2)
        await make_log(employee, datetime(2026, 1, 16, 0, 0), hours=2)
        await session.commit()

        run = await _run(session, clock, emitter, company)

        assert run.results == []

    async def test_inactive_employees_only_when_requested(
        self, session, clock, emitter, company, company_service, hourly_employee, make_log
    ):
        await make_log(hourly_employee, datetime(2026, 1, 15, 8, 0), hours=4)
        await company_service.deactivate_employee(hourly_employee.employee_id)
        await session.commit()

        skipped = await _run(session, clock, emitter, company)
        assert skipped.total_employees == 0
        assert skipped.results == []

        included = await _run(session, clock, emitter, company, include_inactive=True)
        assert included.count(PaymentOutcome.CREATED) == 1


class TestExistingPayments:
    """Corrections of pending payments and skipping of everything else."""

    async def test_pending_payment_absorbs_new_log(
        self, session, clock, emitter, events, company, hourly_employee, make_log
    ):
        await make_log(hourly_employee, datetime(2026, 1, 15, 8, 0), hours=4)
        await session.commit()
        first = await _run(session, clock, emitter, company)
        await session.commit()

        later = await make_log(hourly_employee, datetime(2026, 1, 15, 13, 0), hours=3)
        await session.commit()
        second = await _run(session, clock, emitter, company)
        await session.commit()

        row = second.results[0]
        assert row.outcome == PaymentOutcome.UPDATED
        assert row.payment_id == first.results[0].payment_id
        assert row.total_pay == Decimal("140.00")
        assert row.time_log_count == 2
        assert await _payment_count(session) == 1

        await session.refresh(later)
        assert later.status == "paid"

        corrected = [event for event in events if isinstance(event, PaymentCorrected)]
        assert len(corrected) == 1
        assert corrected[0].previous_amount == Decimal("80.00")
        assert corrected[0].amount == Decimal("140.00")

    async def test_non_pending_payment_is_left_alone(
        self, session, clock, emitter, company, hourly_employee, make_log
    ):
        await make_log(hourly_employee, datetime(2026, 1, 15, 8, 0), hours=4)
        await session.commit()
        first = await _run(session, clock, emitter, company)
        payment_id = first.results[0].payment_id
        await PaymentService(session, clock, emitter).approve(payment_id)
        await session.commit()

        late = await make_log(hourly_employee, datetime(2026, 1, 15, 13, 0), hours=3)
        await session.commit()
        second = await _run(session, clock, emitter, company)
        await session.commit()

        row = second.results[0]
        assert row.outcome == PaymentOutcome.SKIPPED
        assert row.existing_status == "approved"
        assert row.payment_id == payment_id

        payment = await session.get(Payment, payment_id)
        assert payment.amount == Decimal("80.00")
        await session.refresh(late)
        assert late.status == "approved"
        assert await session.get(PaymentTimeLog, late.time_log_id) is None

    async def test_interrupted_claims_are_completed(
        self, session, clock, emitter, company, hourly_employee, make_log
    ):
        """A claim whose log never flipped to paid is finished, not re-paid."""
        log = await make_log(hourly_employee, datetime(2026, 1, 15, 8, 0), hours=4)
        payment = Payment(
            employee_id=hourly_employee.employee_id,
            period_start=DAY_START,
            period_end=DAY_END,
            amount=Decimal("80.00"),
            regular_hours=Decimal("4"),
            bonus_hours=Decimal("0"),
            hourly_rate=Decimal("20"),
            time_log_ids=[str(log.time_log_id)],
        )
        session.add(payment)
        await session.flush()
        session.add(
            PaymentTimeLog(
                time_log_id=log.time_log_id,
                payment_id=payment.payment_id,
                employee_id=hourly_employee.employee_id,
            )
        )
        await session.commit()

        run = await _run(session, clock, emitter, company)
        await session.commit()

        assert run.results == []
        assert await _payment_count(session) == 1
        await session.refresh(log)
        assert log.status == "paid"


class TestFailures:
    """Error handling of a payroll run."""

    async def test_unknown_company(self, session, clock, emitter):
        engine = PayrollEngine(session, clock, emitter)
        with pytest.raises(NotFoundError) as exc_info:
            await engine.compute_payroll(uuid4(), DAY_START, DAY_END)
        assert exc_info.value.code == "COMPANY_NOT_FOUND"

    async def test_inverted_period(self, session, clock, emitter, company):
        with pytest.raises(InvalidStateError) as exc_info:
            await _run(session, clock, emitter, company, start=DAY_END, end=DAY_START)
        assert exc_info.value.code == "INVALID_PERIOD"

    async def test_failing_employee_does_not_abort_run(
        self,
        session,
        clock,
        emitter,
        company,
        employee,
        hourly_employee,
        make_log,
        monkeypatch,
    ):
        broken_log = await make_log(employee, datetime(2026, 1, 15, 8, 0), hours=10)
        await make_log(hourly_employee, datetime(2026, 1, 15, 8, 0), hours=4)
        await session.commit()

        original = RateResolver.resolve_for_employee
        broken_id = employee.employee_id

        async def flaky_resolve(self, target):
            if target.employee_id == broken_id:
                raise RuntimeError("rate lookup failed")
            return await original(self, target)

        monkeypatch.setattr(RateResolver, "resolve_for_employee", flaky_resolve)

        run = await _run(session, clock, emitter, company)
        await session.commit()

        assert run.error_count == 1
        assert run.count(PaymentOutcome.CREATED) == 1
        failed = next(row for row in run.results if row.error)
        assert failed.employee_id == broken_id
        assert failed.outcome == PaymentOutcome.SKIPPED
        assert "rate lookup failed" in failed.error
        assert run.total_amount == Decimal("80.00")
        assert run.employees_with_payments == 1

        await session.refresh(broken_log)
        assert broken_log.status == "approved"


class TestPreview:
    """Pay preview for an explicit set of logs."""

    async def test_preview_does_not_write(
        self, session, clock, emitter, employee, make_log
    ):
        log = await make_log(employee, datetime(2026, 1, 15, 8, 0), hours=10)
        await session.commit()

        breakdown = await PayrollEngine(session, clock, emitter).calculate_employee_payment(
            employee.employee_id, [log.time_log_id]
        )

        assert breakdown.total_pay == Decimal("375.00")
        assert await _payment_count(session) == 0

    async def test_preview_without_approved_logs(
        self, session, clock, emitter, employee, make_log
    ):
        log = await make_log(employee, datetime(2026, 1, 15, 8, 0), hours=4, status="pending")
        engine = PayrollEngine(session, clock, emitter)

        assert await engine.calculate_employee_payment(employee.employee_id, []) is None
        assert (
            await engine.calculate_employee_payment(employee.employee_id, [log.time_log_id])
            is None
        )

    async def test_preview_unknown_employee(self, session, clock, emitter):
        with pytest.raises(NotFoundError):
            await PayrollEngine(session, clock, emitter).calculate_employee_payment(
                uuid4(), [uuid4()]
            )
