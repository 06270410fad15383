"""Integration test fixtures with a real (SQLite) database."""

from collections.abc import AsyncGenerator
from datetime import datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shift_payroll.database import get_engine
from shift_payroll.models import AppUser, Base, PayGuide, PayPeriodExtraTemplate, Shift
from shift_payroll.services.store import SqlAlchemyPayrollStore
from shift_payroll.services.sync_service import PayPeriodSynchronizer


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite engine with the full schema."""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'shift_payroll.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Get database session for integration tests."""
    factory = async_sessionmaker(test_engine, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def store(db_session: AsyncSession) -> SqlAlchemyPayrollStore:
    return SqlAlchemyPayrollStore(db_session)


@pytest.fixture
def synchronizer(store: SqlAlchemyPayrollStore) -> PayPeriodSynchronizer:
    return PayPeriodSynchronizer(store, default_timezone="UTC")


@pytest_asyncio.fixture
async def pay_guide(db_session: AsyncSession) -> PayGuide:
    """$25.50/h guide on the UTC clock."""
    guide = PayGuide(name="Retail", base_rate=Decimal("25.50"), timezone="UTC")
    db_session.add(guide)
    await db_session.flush()
    return guide


@pytest_asyncio.fixture
async def sydney_guide(db_session: AsyncSession) -> PayGuide:
    """Same rate on the Australia/Sydney clock."""
    guide = PayGuide(name="Retail NSW", base_rate=Decimal("25.50"), timezone="Australia/Sydney")
    db_session.add(guide)
    await db_session.flush()
    return guide


@pytest_asyncio.fixture
async def user(db_session: AsyncSession, pay_guide: PayGuide) -> AppUser:
    """Weekly-paid user with no tax settings (scale2 defaults)."""
    app_user = AppUser(
        name="Sam Taylor",
        timezone="UTC",
        pay_period_type="WEEKLY",
        default_pay_guide_id=pay_guide.pay_guide_id,
    )
    db_session.add(app_user)
    await db_session.flush()
    return app_user


@pytest_asyncio.fixture
async def laundry_template(db_session: AsyncSession, user: AppUser) -> PayPeriodExtraTemplate:
    template = PayPeriodExtraTemplate(
        user_id=user.user_id,
        label="Laundry allowance",
        amount=Decimal("10.00"),
        taxable=False,
    )
    retired = PayPeriodExtraTemplate(
        user_id=user.user_id,
        label="Tool allowance",
        amount=Decimal("99.00"),
        active=False,
    )
    db_session.add_all([template, retired])
    await db_session.flush()
    return template


@pytest.fixture
def make_shift(db_session: AsyncSession, user: AppUser, pay_guide: PayGuide):
    """Factory adding an unassigned shift for the test user."""

    async def _make(
        start: datetime,
        end: datetime,
        break_minutes: int = 0,
        guide: PayGuide | None = None,
    ) -> Shift:
        shift = Shift(
            user_id=user.user_id,
            pay_guide_id=(guide or pay_guide).pay_guide_id,
            start_time=start,
            end_time=end,
            break_minutes=break_minutes,
            break_periods=[],
        )
        db_session.add(shift)
        await db_session.flush()
        return shift

    return _make
