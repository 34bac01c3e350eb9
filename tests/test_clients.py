"""
Tests for the client directory: validation, upsert, and both lookups
"""

import pytest
from decimal import Decimal
from dataclasses import replace

from crediario.storage import InMemoryStorage
from crediario.audit import AuditTrail, AuditEventType
from crediario.currency import Money
from crediario.errors import NotFoundError, ValidationError
from crediario.clients import (
    Client, ClientDirectory, PaymentStatus, format_cpf, normalize_cpf
)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit(storage):
    return AuditTrail(storage)


@pytest.fixture
def directory(storage, audit):
    return ClientDirectory(storage, audit)


@pytest.fixture
def populated(directory):
    directory.create_client(
        name="Ana Souza", cpf="12345678900", merchant_id="1",
        email="ana@gmail.com", credit_limit=Money(Decimal('1000')),
        current_debt=Money(Decimal('300')), payment_status=PaymentStatus.A_VENCER,
        client_id="1"
    )
    directory.create_client(
        name="Bruno Lima", cpf="987.654.321-00", merchant_id="1",
        email="bruno@hotmail.com", credit_limit=Money(Decimal('500')),
        current_debt=Money(Decimal('500')), payment_status=PaymentStatus.VENCIDO,
        client_id="2"
    )
    directory.create_client(
        name="Carla Anastácio", cpf="111.222.333-44", merchant_id="1",
        email="carla@outlook.com", credit_limit=Money(Decimal('2000')),
        client_id="3"
    )
    directory.create_client(
        name="Ana Pereira", cpf="555.666.777-88", merchant_id="2",
        credit_limit=Money(Decimal('800')), client_id="4"
    )
    return directory


class TestCPF:

    def test_normalize(self):
        assert normalize_cpf("123.456.789-00") == "12345678900"
        assert normalize_cpf("") == ""
        assert normalize_cpf(None) == ""

    def test_format(self):
        assert format_cpf("12345678900") == "123.456.789-00"
        assert format_cpf("123.456.789-00") == "123.456.789-00"
        assert format_cpf("123") == "123"


class TestClientValidation:
    """A client's debt never exceeds its limit"""

    def test_defaults(self, directory):
        client = directory.create_client(name="Davi", cpf="000.000.000-01", merchant_id="1")
        assert client.credit_limit == Money.zero()
        assert client.current_debt == Money.zero()
        assert client.payment_status == PaymentStatus.EM_DIA
        assert client.available_credit == Money.zero()
        assert not client.has_debt

    def test_debt_above_limit(self, directory):
        with pytest.raises(ValidationError):
            directory.create_client(name="Eva", cpf="1", merchant_id="1",
                                    credit_limit=Money(Decimal('100')),
                                    current_debt=Money(Decimal('100.01')))

    def test_negative_limit(self, directory):
        with pytest.raises(ValidationError):
            directory.create_client(name="Eva", cpf="1", merchant_id="1",
                                    credit_limit=Money(Decimal('-1')))

    @pytest.mark.parametrize("name,cpf", [("", "123"), ("Eva", ""), ("Eva", "abc")])
    def test_required_fields(self, directory, name, cpf):
        with pytest.raises(ValidationError):
            directory.create_client(name=name, cpf=cpf, merchant_id="1")

    def test_available_credit(self, populated):
        assert populated.get_client("1").available_credit == Money(Decimal('700'))


class TestUpsert:
    """Replace in place or append with a fresh id"""

    def test_replace_keeps_position_and_creation(self, populated, audit):
        original = populated.get_client("1")
        changed = replace(original, credit_limit=Money(Decimal('1500')))

        saved = populated.upsert(changed, user_id="2")
        assert saved.created_at == original.created_at
        assert [c.id for c in populated.list_clients()] == ["1", "2", "3", "4"]
        assert populated.get_client("1").credit_limit == Money(Decimal('1500'))

        event = audit.get_events_for_entity("client", "1")[-1]
        assert event.event_type == AuditEventType.CLIENT_UPDATED
        assert event.user_id == "2"

    def test_unknown_id_is_appended_with_new_id(self, populated):
        client = replace(populated.get_client("3"), id="does-not-exist", name="Nova Cliente")
        saved = populated.upsert(client)
        assert saved.id not in ("does-not-exist", "1", "2", "3", "4")
        assert populated.list_clients()[-1].name == "Nova Cliente"
        assert len(populated.list_clients()) == 5

    def test_generated_ids_are_unique(self, directory):
        ids = {
            directory.create_client(name=f"Cliente {i}", cpf=str(i), merchant_id="1").id
            for i in range(1, 20)
        }
        assert len(ids) == 19

    def test_upsert_rejects_invalid(self, populated):
        client = populated.get_client("1")
        client.current_debt = Money(Decimal('5000'))
        with pytest.raises(ValidationError):
            populated.upsert(client)
        assert populated.get_client("1").current_debt == Money(Decimal('300'))

    def test_explicit_duplicate_id(self, populated):
        with pytest.raises(ValidationError):
            populated.create_client(name="X", cpf="1", merchant_id="1", client_id="1")


class TestCashierLookup:
    """find_first resolves a single client"""

    def test_formatted_cpf_matches_digits(self, populated):
        client = populated.find_first("123.456.789-00")
        assert client is not None
        assert client.id == "1"

    def test_partial_cpf(self, populated):
        assert populated.find_first("98765").id == "2"

    def test_name_case_insensitive(self, populated):
        assert populated.find_first("bruno").id == "2"

    def test_first_match_wins(self, populated):
        assert populated.find_first("ana").id == "1"
        assert len(populated.find("ana")) == 3

    def test_not_found(self, populated):
        assert populated.find_first("999.999.999-99") is None
        assert populated.find_first("Zuleica") is None

    def test_blank_query(self, populated):
        assert populated.find_first("") is None
        assert populated.find_first("   ") is None

    def test_letters_only_query_does_not_match_every_cpf(self, populated):
        assert populated.find("xyz") == []

    def test_merchant_scope(self, populated):
        assert populated.find_first("Ana Pereira", merchant_id="1") is None
        assert populated.find_first("Ana Pereira", merchant_id="2").id == "4"


class TestMerchantSearch:
    """search returns every match and can filter by status"""

    def test_blank_returns_all(self, populated):
        assert len(populated.search(merchant_id="1")) == 3

    def test_by_email(self, populated):
        assert [c.id for c in populated.search("hotmail", merchant_id="1")] == ["2"]

    def test_by_status(self, populated):
        overdue = populated.search(status=PaymentStatus.VENCIDO, merchant_id="1")
        assert [c.id for c in overdue] == ["2"]

    def test_query_and_status(self, populated):
        assert populated.search("ana", status=PaymentStatus.EM_DIA, merchant_id="1")[0].id == "3"


class TestClientStats:

    def test_stats(self, populated):
        stats = populated.get_stats("1")
        assert stats.total_clients == 3
        assert stats.clients_in_debt == 2
        assert stats.overdue_clients == 1
        assert stats.total_debt == Money(Decimal('800'))

    def test_require_missing(self, populated):
        with pytest.raises(NotFoundError):
            populated.require_client("404")
