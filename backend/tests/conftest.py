"""
pytest configuration for NOVA_FUNDED backend tests.
"""
import uuid
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from nova_funded.core.config import Settings
from nova_funded.core.database import Base
from nova_funded.models import TradingPlan, User, UserRole
from nova_funded.services.tron.address import hex_to_base58

# In-memory SQLite для тестов
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

USDT_CONTRACT = "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t"
USDT_CONTRACT_HEX = "41a614f803b6fd780986a42c78ec9c7f77e6ded13c"
WALLET_HEX = "41" + "5a" * 20
OTHER_WALLET_HEX = "41" + "c3" * 20


@pytest.fixture(scope="session")
def event_loop_policy():
    """Use the default asyncio policy for all tests."""
    import asyncio
    return asyncio.DefaultEventLoopPolicy()


# ─── Конфигурация ─────────────────────────────────────────────────────────────

@pytest.fixture
def wallet_address() -> str:
    return hex_to_base58(WALLET_HEX)


@pytest.fixture
def other_wallet_address() -> str:
    return hex_to_base58(OTHER_WALLET_HEX)


@pytest.fixture
def config(wallet_address) -> Settings:
    return Settings(
        _env_file=None,
        tron_api_key="",
        usdt_contract_address=USDT_CONTRACT,
        usdt_decimals=6,
        receiving_wallet_address=wallet_address,
        settlement_currency="USDT",
        explorer_timeout_seconds=1.0,
        telegram_bot_token="",
        super_admin_tg_id=0,
    )


# ─── База данных ──────────────────────────────────────────────────────────────

@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


# ─── Фабрики ──────────────────────────────────────────────────────────────────

@pytest.fixture
def make_user(db_session):
    async def _make(email: str = "trader@example.com", role: UserRole = UserRole.user, **kwargs) -> User:
        user = User(id=uuid.uuid4(), email=email, role=role, **kwargs)
        db_session.add(user)
        await db_session.commit()
        return user
    return _make


@pytest.fixture
def make_plan(db_session):
    async def _make(
        name: str = "10K Challenge",
        price: str = "100",
        account_size: str = "10000",
        is_active: bool = True,
    ) -> TradingPlan:
        plan = TradingPlan(
            name=name,
            price=Decimal(price),
            account_size=Decimal(account_size),
            is_active=is_active,
        )
        db_session.add(plan)
        await db_session.commit()
        return plan
    return _make


@pytest.fixture
async def user(make_user) -> User:
    return await make_user()


@pytest.fixture
async def plan(make_plan) -> TradingPlan:
    return await make_plan()


# ─── Ответы explorer API ──────────────────────────────────────────────────────

def _abi_word(hex_value: str) -> str:
    return hex_value.rjust(64, "0")


@pytest.fixture
def trongrid_tx():
    """Транзакция TronGrid v1 с вызовом transfer(address,uint256)."""
    def _build(
        tx_hash: str = "ab" * 32,
        to_hex: str = WALLET_HEX,
        raw_amount: int = 100_000_000,
        contract_hex: str = USDT_CONTRACT_HEX,
        result: str = "SUCCESS",
    ) -> dict:
        data = "a9059cbb" + _abi_word(to_hex[2:]) + _abi_word(format(raw_amount, "x"))
        return {
            "success": True,
            "data": [{
                "txID": tx_hash,
                "ret": [{"contractRet": result}],
                "raw_data": {
                    "contract": [{
                        "type": "TriggerSmartContract",
                        "parameter": {
                            "value": {
                                "data": data,
                                "owner_address": OTHER_WALLET_HEX,
                                "contract_address": contract_hex,
                            },
                        },
                    }],
                },
            }],
        }
    return _build


@pytest.fixture
def tronscan_tx(wallet_address):
    """Ответ TronScan /api/transaction-info."""
    def _build(
        tx_hash: str = "cd" * 32,
        to_address: str = None,
        amount_str: str = "100000000",
        contract_address: str = USDT_CONTRACT,
        result: str = "SUCCESS",
    ) -> dict:
        return {
            "hash": tx_hash,
            "contractRet": result,
            "confirmed": True,
            "trc20TransferInfo": [{
                "contract_address": contract_address,
                "from_address": hex_to_base58(OTHER_WALLET_HEX),
                "to_address": to_address or wallet_address,
                "amount_str": amount_str,
                "decimals": 6,
                "symbol": "USDT",
            }],
        }
    return _build
