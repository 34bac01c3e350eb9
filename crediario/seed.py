"""Demo data for the crediário service

Generates a deterministic data set when given a seed:
- The three demo users (administrator, merchant and cashier of merchant 1)
- 8 merchants
- 25 clients of merchant 1 with CPF-formatted ids
- Credit records that add up to each client's debt

Run with: python -m crediario.seed
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional
import random

from .access import Role
from .clients import Client, PaymentStatus, format_cpf
from .currency import Money
from .ledger import CreditRecordStatus
from .logging_config import get_logger, log_action
from .merchants import Merchant, MerchantStatus

logger = get_logger("crediario.seed")

DEMO_MERCHANT_ID = "1"

DEMO_USERS = [
    # id, email, password, name, role, merchant_id
    ("1", "admin@sistema.com", "admin123", "Super Administrador", Role.SUPERADMIN, None),
    ("2", "comerciante@loja.com", "comerciante123", "João Silva", Role.COMERCIANTE, DEMO_MERCHANT_ID),
    ("3", "caixa@loja.com", "caixa123", "Maria Santos", Role.CAIXA, DEMO_MERCHANT_ID),
]

FIRST_NAMES = [
    'Ana', 'Bruno', 'Carla', 'Daniel', 'Eduarda', 'Felipe', 'Gabriela', 'Henrique',
    'Isabela', 'João', 'Juliana', 'Lucas', 'Mariana', 'Mateus', 'Natália', 'Otávio',
    'Paula', 'Rafael', 'Renata', 'Rodrigo', 'Sofia', 'Thiago', 'Vanessa', 'Vinícius',
    'Beatriz', 'Carlos', 'Fernanda', 'Gustavo', 'Larissa', 'Pedro', 'Letícia', 'André'
]

LAST_NAMES = [
    'Silva', 'Santos', 'Oliveira', 'Souza', 'Rodrigues', 'Ferreira', 'Alves', 'Pereira',
    'Lima', 'Gomes', 'Costa', 'Ribeiro', 'Martins', 'Carvalho', 'Almeida', 'Lopes',
    'Soares', 'Fernandes', 'Vieira', 'Barbosa', 'Rocha', 'Dias', 'Nascimento', 'Andrade'
]

STORE_KINDS = ['Mercearia', 'Armazém', 'Loja', 'Mercado', 'Empório', 'Magazine', 'Bazar', 'Casa']

STREETS = [
    'Rua das Flores', 'Avenida Brasil', 'Rua São João', 'Rua XV de Novembro',
    'Avenida Paulista', 'Rua da Consolação', 'Rua Sete de Setembro', 'Avenida Getúlio Vargas'
]

PRODUCTS = [
    'Geladeira', 'Fogão', 'Televisão', 'Sofá', 'Colchão', 'Ventilador', 'Micro-ondas',
    'Máquina de lavar', 'Guarda-roupa', 'Bicicleta', 'Celular', 'Rancho do mês',
    'Material escolar', 'Tênis', 'Jaqueta'
]

EMAIL_DOMAINS = ['gmail.com', 'hotmail.com', 'outlook.com', 'yahoo.com.br']


@dataclass
class SeedSummary:
    users: int
    merchants: int
    clients: int
    credit_records: int


def random_past_date(rng: random.Random, now: datetime, max_days: int) -> datetime:
    """A random moment in the last ``max_days`` days"""
    return now - timedelta(days=rng.randint(1, max_days), minutes=rng.randint(0, 1439))


def random_amount(rng: random.Random, low: int, high: int) -> Money:
    """Random BRL amount between ``low`` and ``high`` reais, with cents"""
    return Money(Decimal(rng.randint(low * 100, high * 100)) / 100)


def random_phone(rng: random.Random) -> str:
    return f"({rng.randint(11, 99)}) 9{rng.randint(1000, 9999)}-{rng.randint(1000, 9999)}"


def random_address(rng: random.Random) -> str:
    return f"{rng.choice(STREETS)}, {rng.randint(10, 2999)}"


def random_cpf(rng: random.Random) -> str:
    return format_cpf("".join(str(rng.randint(0, 9)) for _ in range(11)))


def split_amount(rng: random.Random, total: Money, parts: int) -> List[Money]:
    """Split ``total`` into ``parts`` positive amounts that add up exactly"""
    cents = int(total.amount * 100)
    parts = max(1, min(parts, cents))
    cuts = sorted(rng.sample(range(1, cents), parts - 1)) if parts > 1 else []
    bounds = [0] + cuts + [cents]
    return [Money(Decimal(bounds[i + 1] - bounds[i]) / 100) for i in range(parts)]


def create_users(system) -> int:
    for user_id, email, password, name, role, merchant_id in DEMO_USERS:
        if system.access_manager.get_user_by_email(email):
            continue
        system.access_manager.create_user(
            email=email,
            password=password,
            name=name,
            role=role,
            merchant_id=merchant_id,
            user_id=user_id
        )
    return len(DEMO_USERS)


def create_merchants(system, rng: random.Random, count: int, now: datetime) -> List[Merchant]:
    merchants = []
    for i in range(count):
        last_name = rng.choice(LAST_NAMES)
        name = f"{rng.choice(STORE_KINDS)} {last_name}"
        slug = name.lower().replace(' ', '')
        # Merchant 1 backs the demo users and stays active
        status = MerchantStatus.ACTIVE if i == 0 else rng.choice(list(MerchantStatus))

        merchant = system.merchant_directory.create_merchant(
            name=name,
            email=f"contato@{slug}{i + 1}.com.br",
            phone=random_phone(rng),
            address=random_address(rng),
            status=status,
            merchant_id=str(i + 1),
            created_at=random_past_date(rng, now, 730)
        )
        merchants.append(merchant)
    return merchants


def create_clients(system, rng: random.Random, count: int, now: datetime,
                   merchant_id: str = DEMO_MERCHANT_ID) -> List[Client]:
    clients = []
    for i in range(count):
        first_name = rng.choice(FIRST_NAMES)
        last_name = rng.choice(LAST_NAMES)
        credit_limit = random_amount(rng, 500, 5000)
        debt_cap = min(credit_limit.amount, Decimal("2000"))
        current_debt = Money(Decimal(rng.randint(0, int(debt_cap * 100))) / 100)

        if current_debt.is_zero():
            status = PaymentStatus.EM_DIA
        else:
            status = rng.choice(list(PaymentStatus))

        email_name = f"{first_name.lower()}.{last_name.lower()}"
        client = system.client_directory.create_client(
            name=f"{first_name} {last_name}",
            cpf=random_cpf(rng),
            merchant_id=merchant_id,
            email=f"{email_name}{rng.randint(1, 99)}@{rng.choice(EMAIL_DOMAINS)}",
            phone=random_phone(rng),
            address=random_address(rng),
            credit_limit=credit_limit,
            current_debt=current_debt,
            payment_status=status,
            last_payment=random_past_date(rng, now, 30),
            created_at=random_past_date(rng, now, 730),
            client_id=str(i + 1)
        )
        clients.append(client)
    return clients


def create_credit_records(system, rng: random.Random, clients: List[Client],
                          now: datetime) -> int:
    """
    Open records add up to each client's debt and their due dates agree with
    its status; a few settled records are added as purchase history.
    """
    ledger = system.ledger_service
    created = 0

    for client in clients:
        for _ in range(rng.randint(0, 2)):
            amount = random_amount(rng, 50, 1000)
            created_at = random_past_date(rng, now, 365)
            ledger.add_record(
                client_id=client.id,
                amount=amount,
                description=rng.choice(PRODUCTS),
                due_date=created_at + timedelta(days=30),
                status=CreditRecordStatus.PAID,
                paid_at=created_at + timedelta(days=rng.randint(1, 30)),
                created_at=created_at
            )
            created += 1

        if not client.has_debt:
            continue

        for index, amount in enumerate(split_amount(rng, client.current_debt, rng.randint(1, 3))):
            if client.payment_status == PaymentStatus.VENCIDO and index == 0:
                due_date = now - timedelta(days=rng.randint(1, 60))
                status = CreditRecordStatus.OVERDUE
            elif client.payment_status == PaymentStatus.A_VENCER:
                due_date = now + timedelta(days=rng.randint(1, 20))
                status = CreditRecordStatus.PENDING
            else:
                due_date = now + timedelta(days=rng.randint(15, 45))
                status = CreditRecordStatus.PENDING

            ledger.add_record(
                client_id=client.id,
                amount=amount,
                description=rng.choice(PRODUCTS),
                due_date=due_date,
                status=status,
                created_at=due_date - timedelta(days=system.config.default_due_days)
            )
            created += 1

    return created


def seed_demo_data(system, seed: Optional[int] = None, merchants: int = 8,
                   clients: int = 25, now: Optional[datetime] = None) -> SeedSummary:
    """
    Populate ``system`` with the demo data set. The same seed always yields
    the same data.
    """
    rng = random.Random(seed)
    now = now or datetime.now(timezone.utc)

    with system.storage.atomic():
        user_count = create_users(system)
        merchant_list = create_merchants(system, rng, merchants, now)
        client_list = create_clients(system, rng, clients, now)
        record_count = create_credit_records(system, rng, client_list, now)
        for merchant in merchant_list:
            system.ledger_service.sync_merchant_totals(merchant.id)

    summary = SeedSummary(
        users=user_count,
        merchants=len(merchant_list),
        clients=len(client_list),
        credit_records=record_count
    )
    log_action(logger, "info", "Demo data generated", action="seed",
               extra={"users": summary.users, "merchants": summary.merchants,
                      "clients": summary.clients, "credit_records": summary.credit_records})
    return summary


def main():
    """Seed a fresh system and print what was created"""
    from .api.auth import CrediarioSystem
    from .config import get_config
    from .logging_config import setup_logging

    config = get_config()
    setup_logging(level=config.log_level, log_format="text")

    system = CrediarioSystem(config, seed=False)
    summary = seed_demo_data(system, seed=config.seed_random_seed,
                             merchants=config.seed_merchants, clients=config.seed_clients)

    print("Crediário - Demo Data Generator")
    print("=" * 50)
    print(f"   • {summary.users} users")
    print(f"   • {summary.merchants} merchants")
    print(f"   • {summary.clients} clients")
    print(f"   • {summary.credit_records} credit records")
    print("")
    for _, email, password, _, role, _ in DEMO_USERS:
        print(f"   {role.code:<12} {email} / {password}")


if __name__ == "__main__":
    main()
