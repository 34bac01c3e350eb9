"""
Test suite for the credit ledger

Tests the pure payment/grant operations, their rejection reasons, and the
ledger service: credit record reconciliation, FIFO settlement, the overdue
sweep and all-or-nothing writes.
"""

import pytest
import random
from dataclasses import replace
from datetime import datetime, timezone, timedelta
from decimal import Decimal

from crediario.storage import InMemoryStorage
from crediario.audit import AuditTrail, AuditEventType
from crediario.currency import Money
from crediario.errors import NotFoundError, ValidationError
from crediario.clients import Client, ClientDirectory, PaymentStatus
from crediario.merchants import MerchantDirectory
from crediario.ledger import (
    CreditLedgerService, CreditRecord, CreditRecordStatus, LedgerResult, Rejection,
    DEBT_ADJUSTMENT, OPENING_BALANCE, grant_credit, record_payment
)


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def brl(value) -> Money:
    return Money(Decimal(str(value)))


def make_client(limit="1000", debt="300", status=PaymentStatus.A_VENCER) -> Client:
    return Client(
        id="1",
        created_at=NOW,
        updated_at=NOW,
        name="Ana Souza",
        cpf="123.456.789-00",
        merchant_id="1",
        credit_limit=brl(limit),
        current_debt=brl(debt),
        payment_status=status
    )


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit(storage):
    return AuditTrail(storage)


@pytest.fixture
def merchants(storage, audit):
    directory = MerchantDirectory(storage, audit)
    directory.create_merchant(name="Mercearia Silva", email="contato@silva.com", merchant_id="1")
    return directory


@pytest.fixture
def clients(storage, audit):
    return ClientDirectory(storage, audit)


@pytest.fixture
def ledger(storage, clients, merchants, audit):
    return CreditLedgerService(storage, clients, merchants, audit, default_due_days=30)


@pytest.fixture
def client(clients):
    return clients.create_client(
        name="Ana Souza", cpf="123.456.789-00", merchant_id="1",
        credit_limit=brl(1000), client_id="1"
    )


class TestRecordPayment:
    """Pure payment operation"""

    def test_full_payoff_sets_em_dia(self):
        """limit 1000, debt 300, pay 300 -> debt 0 and em_dia"""
        client = make_client()
        result = record_payment(client, brl(300), NOW)

        assert result.ok
        assert result.client.current_debt == Money.zero()
        assert result.client.payment_status == PaymentStatus.EM_DIA
        assert result.client.last_payment == NOW

    def test_partial_payment_keeps_status(self):
        client = make_client(status=PaymentStatus.VENCIDO)
        result = record_payment(client, brl(100), NOW)

        assert result.client.current_debt == brl(200)
        assert result.client.payment_status == PaymentStatus.VENCIDO

    def test_exceeds_debt(self):
        client = make_client()
        result = record_payment(client, brl("300.01"))

        assert not result.ok
        assert result.rejection == Rejection.EXCEEDS_DEBT
        assert result.client is None
        assert client.current_debt == brl(300)

    @pytest.mark.parametrize("amount", ["0", "-10"])
    def test_invalid_amount(self, amount):
        assert record_payment(make_client(), brl(amount)).rejection == Rejection.INVALID_AMOUNT

    def test_payment_on_zero_debt(self):
        client = make_client(debt="0", status=PaymentStatus.EM_DIA)
        assert record_payment(client, brl(1)).rejection == Rejection.EXCEEDS_DEBT

    def test_input_not_mutated(self):
        client = make_client()
        record_payment(client, brl(300), NOW)
        assert client.current_debt == brl(300)
        assert client.payment_status == PaymentStatus.A_VENCER


class TestGrantCredit:
    """Pure grant operation"""

    def test_grant_within_available(self):
        client = make_client(status=PaymentStatus.EM_DIA)
        result = grant_credit(client, brl(700), "Geladeira", NOW)

        assert result.ok
        assert result.client.current_debt == brl(1000)
        assert result.client.available_credit == Money.zero()
        assert result.client.payment_status == PaymentStatus.A_VENCER

    def test_grant_sets_a_vencer_even_when_overdue(self):
        client = make_client(status=PaymentStatus.VENCIDO)
        assert grant_credit(client, brl(10), "Pão").client.payment_status == PaymentStatus.A_VENCER

    def test_exceeds_available_credit(self):
        """Same client: grant 800 "TV" with 700 available is refused"""
        client = make_client()
        result = grant_credit(client, brl(800), "TV")

        assert result.rejection == Rejection.EXCEEDS_AVAILABLE_CREDIT
        assert client.current_debt == brl(300)

    @pytest.mark.parametrize("description", ["", "   "])
    def test_missing_description(self, description):
        assert grant_credit(make_client(), brl(10), description).rejection == \
            Rejection.MISSING_DESCRIPTION

    def test_rejection_order(self):
        """Amount is checked before description, description before headroom"""
        client = make_client()
        assert grant_credit(client, brl(0), "").rejection == Rejection.INVALID_AMOUNT
        assert grant_credit(client, brl(5000), "").rejection == Rejection.MISSING_DESCRIPTION

    def test_rejection_messages(self):
        for rejection in Rejection:
            assert rejection.message


class TestLedgerProperties:
    """Invariants that hold for any sequence of operations"""

    def test_debt_stays_within_limit(self):
        rng = random.Random(7)
        client = make_client(limit="2000", debt="0", status=PaymentStatus.EM_DIA)

        for _ in range(300):
            amount = Money(Decimal(rng.randint(-500, 150000)) / 100)
            if rng.random() < 0.5:
                result = record_payment(client, amount, NOW)
            else:
                result = grant_credit(client, amount, "Compra", NOW)
            if result.ok:
                client = result.client
            assert Money.zero() <= client.current_debt <= client.credit_limit

    def test_grant_then_pay_restores_debt(self):
        client = make_client()
        granted = grant_credit(client, brl("123.45"), "Sofá", NOW).client
        paid = record_payment(granted, brl("123.45"), NOW).client
        assert paid.current_debt == client.current_debt

    def test_result_constructors(self):
        assert LedgerResult.accepted(make_client()).ok
        assert not LedgerResult.rejected(Rejection.EXCEEDS_DEBT).ok


class TestCreditRecord:

    def test_outstanding(self):
        record = CreditRecord(
            id="r1", created_at=NOW, updated_at=NOW, client_id="1",
            amount=brl(200), description="TV", due_date=NOW, paid_amount=brl(50)
        )
        assert record.outstanding == brl(150)
        assert record.is_open
        assert record.is_past_due(NOW + timedelta(seconds=1))
        assert not record.is_past_due(NOW)

    def test_round_trip(self):
        record = CreditRecord(
            id="r1", created_at=NOW, updated_at=NOW, client_id="1",
            amount=brl(200), description="TV", due_date=NOW
        )
        assert CreditRecord.from_dict(record.to_dict()) == record

    def test_invalid_amounts(self):
        with pytest.raises(ValueError):
            CreditRecord(id="r", created_at=NOW, updated_at=NOW, client_id="1",
                         amount=brl(0), description="x", due_date=NOW)
        with pytest.raises(ValueError):
            CreditRecord(id="r", created_at=NOW, updated_at=NOW, client_id="1",
                         amount=brl(10), description="x", due_date=NOW, paid_amount=brl(11))


class TestLedgerServiceGrant:
    """Grants append a pending credit record"""

    def test_grant_appends_record(self, ledger, clients, client, audit):
        result = ledger.grant_credit("1", brl(250), " Televisão ", user_id="3", now=NOW)

        assert result.ok
        assert result.record.status == CreditRecordStatus.PENDING
        assert result.record.description == "Televisão"
        assert result.record.due_date == NOW + timedelta(days=30)
        assert result.record.amount == brl(250)

        stored = clients.get_client("1")
        assert stored.current_debt == brl(250)
        assert stored.payment_status == PaymentStatus.A_VENCER
        assert ledger.outstanding_for_client("1") == brl(250)

        event = audit.get_events_by_type(AuditEventType.CREDIT_GRANTED)[0]
        assert event.user_id == "3"
        assert event.metadata["credit_record_id"] == result.record.id

    def test_explicit_due_date(self, ledger, client):
        due = NOW + timedelta(days=10)
        result = ledger.grant_credit("1", brl(10), "Pão", due_date=due, now=NOW)
        assert result.record.due_date == due

    def test_rejected_grant_writes_nothing(self, ledger, clients, client, audit, storage):
        before_clients = storage.load_all("clients")
        before_events = audit.count_events()

        for _ in range(2):
            result = ledger.grant_credit("1", brl(1001), "TV", now=NOW)
            assert result.rejection == Rejection.EXCEEDS_AVAILABLE_CREDIT

        assert storage.load_all("clients") == before_clients
        assert audit.count_events() == before_events
        assert ledger.records_for_client("1") == []

    def test_unknown_client(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.grant_credit("404", brl(10), "x")

    def test_merchant_totals_follow(self, ledger, merchants, client):
        ledger.grant_credit("1", brl(400), "Sofá", now=NOW)
        merchant = merchants.get_merchant("1")
        assert merchant.total_clients == 1
        assert merchant.total_debt == brl(400)


class TestLedgerServicePayment:
    """Payments settle open records, earliest due date first"""

    def test_fifo_settlement(self, ledger, clients, client):
        later = ledger.grant_credit("1", brl(100), "Ventilador",
                                    due_date=NOW + timedelta(days=40), now=NOW).record
        earlier = ledger.grant_credit("1", brl(200), "Fogão",
                                      due_date=NOW + timedelta(days=10), now=NOW).record

        result = ledger.record_payment("1", brl(250), user_id="3", now=NOW)
        assert result.ok
        assert [r.id for r in result.settled] == [earlier.id, later.id]

        settled_earlier = ledger.get_record(earlier.id)
        assert settled_earlier.status == CreditRecordStatus.PAID
        assert settled_earlier.paid_at == NOW

        partial = ledger.get_record(later.id)
        assert partial.status == CreditRecordStatus.PENDING
        assert partial.paid_amount == brl(50)
        assert partial.outstanding == brl(50)

        stored = clients.get_client("1")
        assert stored.current_debt == brl(50)
        assert stored.payment_status == PaymentStatus.A_VENCER
        assert ledger.outstanding_for_client("1") == stored.current_debt

    def test_payoff_closes_everything(self, ledger, clients, client, audit):
        ledger.grant_credit("1", brl(100), "A", now=NOW)
        ledger.grant_credit("1", brl(200), "B", now=NOW)

        result = ledger.record_payment("1", brl(300), now=NOW)
        assert result.client.payment_status == PaymentStatus.EM_DIA
        assert all(r.status == CreditRecordStatus.PAID for r in ledger.records_for_client("1"))
        assert len(audit.get_events_by_type(AuditEventType.CREDIT_RECORD_PAID)) == 2

    def test_payoff_closes_records_beyond_balance(self, ledger, clients):
        """Records that add up to more than the balance are closed when it reaches zero"""
        clients.create_client(name="Bia", cpf="1", merchant_id="1", credit_limit=brl(500),
                              current_debt=brl(100), client_id="9")
        record = ledger.add_record("9", brl(250), "Colchão", due_date=NOW)

        ledger.record_payment("9", brl(100), now=NOW)
        closed = ledger.get_record(record.id)
        assert closed.status == CreditRecordStatus.PAID
        assert closed.outstanding == Money.zero()

    def test_rejected_payment_is_noop(self, ledger, clients, client, audit, storage):
        ledger.grant_credit("1", brl(300), "TV", now=NOW)
        before = storage.load_all("clients"), storage.load_all("credit_records")
        events = audit.count_events()

        result = ledger.record_payment("1", brl(301), now=NOW)
        assert result.rejection == Rejection.EXCEEDS_DEBT
        assert (storage.load_all("clients"), storage.load_all("credit_records")) == before
        assert audit.count_events() == events

    def test_failure_rolls_back_every_write(self, ledger, clients, client, audit, storage, monkeypatch):
        ledger.grant_credit("1", brl(300), "TV", now=NOW)
        before = storage.load_all("clients"), storage.load_all("credit_records")
        events = audit.count_events()

        def boom(merchant_id):
            raise RuntimeError("totals unavailable")

        monkeypatch.setattr(ledger, "sync_merchant_totals", boom)
        with pytest.raises(RuntimeError):
            ledger.record_payment("1", brl(300), now=NOW)

        assert (storage.load_all("clients"), storage.load_all("credit_records")) == before
        assert audit.count_events() == events
        assert not storage.in_transaction

    def test_audit_chain_stays_valid(self, ledger, client, audit):
        ledger.grant_credit("1", brl(300), "TV", now=NOW)
        ledger.record_payment("1", brl(100), now=NOW)
        ledger.grant_credit("1", brl(2000), "Carro", now=NOW)
        assert audit.verify_integrity()["valid"]


class TestOverdueSweep:
    """Status follows the due dates of unpaid records"""

    def test_past_due_record_marks_client_vencido(self, ledger, clients, client, audit):
        record = ledger.grant_credit("1", brl(100), "Celular",
                                     due_date=NOW - timedelta(days=1), now=NOW).record

        changed = ledger.refresh_overdue(now=NOW)
        assert [c.id for c in changed] == ["1"]
        assert clients.get_client("1").payment_status == PaymentStatus.VENCIDO
        assert ledger.get_record(record.id).status == CreditRecordStatus.OVERDUE
        assert audit.get_events_by_type(AuditEventType.CREDIT_RECORD_OVERDUE)

    def test_sweep_is_idempotent(self, ledger, client):
        ledger.grant_credit("1", brl(100), "Celular", due_date=NOW - timedelta(days=1), now=NOW)
        ledger.refresh_overdue(now=NOW)
        assert ledger.refresh_overdue(now=NOW) == []

    def test_partial_payment_keeps_vencido(self, ledger, clients, client):
        ledger.grant_credit("1", brl(100), "Celular", due_date=NOW - timedelta(days=1), now=NOW)
        ledger.refresh_overdue(now=NOW)

        ledger.record_payment("1", brl(40), now=NOW)
        ledger.refresh_overdue(now=NOW)
        assert clients.get_client("1").payment_status == PaymentStatus.VENCIDO

    def test_settling_overdue_record_returns_to_a_vencer(self, ledger, clients, client):
        ledger.grant_credit("1", brl(100), "Celular", due_date=NOW - timedelta(days=1), now=NOW)
        ledger.grant_credit("1", brl(200), "Fogão", due_date=NOW + timedelta(days=20), now=NOW)
        ledger.refresh_overdue(now=NOW)
        assert clients.get_client("1").payment_status == PaymentStatus.VENCIDO

        ledger.record_payment("1", brl(100), now=NOW)
        changed = ledger.refresh_overdue(now=NOW)
        assert [c.payment_status for c in changed] == [PaymentStatus.A_VENCER]

    def test_future_records_do_not_change_status(self, ledger, clients, client):
        ledger.grant_credit("1", brl(100), "Celular", now=NOW)
        assert ledger.refresh_overdue(now=NOW) == []
        assert clients.get_client("1").payment_status == PaymentStatus.A_VENCER

    def test_zero_debt_is_em_dia(self, ledger, clients):
        clients.create_client(name="Caio", cpf="2", merchant_id="1", credit_limit=brl(100),
                              payment_status=PaymentStatus.VENCIDO, client_id="7")
        changed = ledger.refresh_overdue(now=NOW)
        assert [(c.id, c.payment_status) for c in changed] == [("7", PaymentStatus.EM_DIA)]

    def test_zero_debt_wins_over_open_overdue_records(self, ledger, clients, client):
        ledger.grant_credit("1", brl(100), "Celular", due_date=NOW - timedelta(days=1), now=NOW)
        clients.upsert(replace(clients.get_client("1"), current_debt=Money.zero()))

        ledger.refresh_overdue(now=NOW)
        assert clients.get_client("1").payment_status == PaymentStatus.EM_DIA

    def test_sweep_limited_to_one_merchant(self, ledger, clients, merchants, client):
        merchants.create_merchant(name="Bazar Lima", email="contato@lima.com", merchant_id="2")
        clients.create_client(name="Davi Rocha", cpf="5", merchant_id="2", credit_limit=brl(500),
                              client_id="other")
        ledger.grant_credit("1", brl(100), "Celular", due_date=NOW - timedelta(days=1), now=NOW)
        other = ledger.grant_credit("other", brl(100), "Rádio",
                                    due_date=NOW - timedelta(days=1), now=NOW).record

        changed = ledger.refresh_overdue(now=NOW, merchant_id="1")
        assert [c.id for c in changed] == ["1"]
        assert clients.get_client("other").payment_status == PaymentStatus.A_VENCER
        assert ledger.get_record(other.id).status == CreditRecordStatus.PENDING


class TestClientEdits:
    """Merchant edits keep credit records in step with the balance"""

    def test_opening_debt_opens_record(self, ledger, merchants):
        client = ledger.create_client(name="Beatriz Alves", cpf="9", merchant_id="1",
                                      credit_limit=brl(1000), current_debt=brl(250),
                                      payment_status=PaymentStatus.A_VENCER, now=NOW)

        [record] = ledger.records_for_client(client.id)
        assert record.description == OPENING_BALANCE
        assert record.due_date == NOW + timedelta(days=30)
        assert ledger.outstanding_for_client(client.id) == client.current_debt
        assert merchants.get_merchant("1").total_debt == brl(250)

    def test_opening_debt_of_overdue_client(self, ledger, clients):
        client = ledger.create_client(name="Beatriz Alves", cpf="9", merchant_id="1",
                                      credit_limit=brl(1000), current_debt=brl(250),
                                      payment_status=PaymentStatus.VENCIDO, now=NOW)

        [record] = ledger.records_for_client(client.id)
        assert record.status == CreditRecordStatus.OVERDUE
        assert ledger.refresh_overdue(now=NOW) == []
        assert clients.get_client(client.id).payment_status == PaymentStatus.VENCIDO

    def test_client_without_debt_has_no_records(self, ledger):
        client = ledger.create_client(name="Beatriz Alves", cpf="9", merchant_id="1",
                                      credit_limit=brl(1000), now=NOW)
        assert ledger.records_for_client(client.id) == []
        assert client.last_payment is None

    def test_lowering_debt_settles_oldest_first(self, ledger, client, audit):
        first = ledger.grant_credit("1", brl(100), "A", due_date=NOW + timedelta(days=5), now=NOW).record
        second = ledger.grant_credit("1", brl(200), "B", due_date=NOW + timedelta(days=20), now=NOW).record

        updated = ledger.update_client("1", {"current_debt": brl(150)}, user_id="2", now=NOW)

        assert updated.current_debt == brl(150)
        assert ledger.get_record(first.id).status == CreditRecordStatus.PAID
        assert ledger.get_record(second.id).outstanding == brl(150)
        assert ledger.outstanding_for_client("1") == brl(150)
        assert audit.get_events_by_type(AuditEventType.DEBT_ADJUSTED)

    def test_clearing_debt_closes_records(self, ledger, clients, client):
        ledger.grant_credit("1", brl(100), "Celular", due_date=NOW - timedelta(days=1), now=NOW)
        ledger.refresh_overdue(now=NOW)

        updated = ledger.update_client("1", {"current_debt": Money.zero()}, now=NOW)

        assert updated.payment_status == PaymentStatus.EM_DIA
        assert all(not r.is_open for r in ledger.records_for_client("1"))
        assert ledger.refresh_overdue(now=NOW) == []
        assert clients.get_client("1").payment_status == PaymentStatus.EM_DIA

    def test_raising_debt_opens_record(self, ledger, client):
        updated = ledger.update_client("1", {"current_debt": brl(400)}, now=NOW)

        [record] = ledger.records_for_client("1")
        assert record.amount == brl(400)
        assert record.description == DEBT_ADJUSTMENT
        assert updated.payment_status == PaymentStatus.A_VENCER
        assert ledger.outstanding_for_client("1") == updated.current_debt

    def test_invalid_edit_writes_nothing(self, ledger, clients, client, storage):
        ledger.grant_credit("1", brl(100), "Celular", now=NOW)
        before = storage.load_all(ledger.table_name)

        with pytest.raises(ValidationError):
            ledger.update_client("1", {"current_debt": brl(2000)}, now=NOW)

        assert storage.load_all(ledger.table_name) == before
        assert clients.get_client("1").current_debt == brl(100)

    def test_other_fields_leave_records_alone(self, ledger, client, audit):
        ledger.grant_credit("1", brl(100), "Celular", now=NOW)
        updated = ledger.update_client("1", {"name": "Ana Souza Lima"}, now=NOW)

        assert updated.name == "Ana Souza Lima"
        assert ledger.outstanding_for_client("1") == brl(100)
        assert not audit.get_events_by_type(AuditEventType.DEBT_ADJUSTED)


class TestRecordQueries:

    def test_records_due_within(self, ledger, client):
        soon = ledger.grant_credit("1", brl(10), "A", due_date=NOW + timedelta(days=3), now=NOW).record
        ledger.grant_credit("1", brl(10), "B", due_date=NOW + timedelta(days=30), now=NOW)
        ledger.grant_credit("1", brl(10), "C", due_date=NOW - timedelta(days=1), now=NOW)

        assert [r.id for r in ledger.records_due_within(7, now=NOW)] == [soon.id]

    def test_add_paid_record(self, ledger, client):
        record = ledger.add_record("1", brl(80), "Tênis", due_date=NOW,
                                   status=CreditRecordStatus.PAID, paid_at=NOW)
        assert record.paid_amount == brl(80)
        assert not record.is_open
        assert ledger.outstanding_for_client("1") == Money.zero()
