"""
Marketplace Service Integration Test Fixtures

Provides a MarketplaceRepository on a real PostgreSQL database and a seeder
that removes everything it created after each test.
"""

import asyncio
from decimal import Decimal
from typing import AsyncGenerator, List, Optional

import pytest_asyncio

from core.config_manager import ConfigManager
from core.postgres_client import PostgresClient
from microservices.marketplace_service.marketplace_repository import MarketplaceRepository
from microservices.marketplace_service.models import Shipment, ShipmentStatus, UserWallet
from tests.contracts.marketplace.data_contract import MarketplaceTestDataFactory

CONNECT_TIMEOUT_SECONDS = 5


@pytest_asyncio.fixture(scope="function")
async def marketplace_repository() -> AsyncGenerator[Optional[MarketplaceRepository], None]:
    """
    MarketplaceRepository on the configured PostgreSQL database

    Creates the marketplace schema and tables if they don't exist.
    Yields None when the database is unreachable.
    """
    db = PostgresClient(service_name="marketplace_service")
    repository = MarketplaceRepository(config=ConfigManager("marketplace_service"), db=db)
    try:
        await asyncio.wait_for(repository.initialize(), timeout=CONNECT_TIMEOUT_SECONDS)
    except Exception as e:
        print(f"Warning: Could not connect to marketplace database: {e}")
        await db.close()
        yield None
        return

    try:
        yield repository
    finally:
        await db.close()


@pytest_asyncio.fixture(scope="function")
async def seed(marketplace_repository) -> AsyncGenerator[Optional["MarketplaceSeeder"], None]:
    """Seeder bound to the repository; deletes its rows on teardown"""
    if not marketplace_repository:
        yield None
        return

    seeder = MarketplaceSeeder(marketplace_repository)
    try:
        yield seeder
    finally:
        await seeder.cleanup()


class MarketplaceSeeder:
    """Creates users and shipments through the repository and tracks their ids"""

    def __init__(self, repository: MarketplaceRepository):
        self.repository = repository
        self.factory = MarketplaceTestDataFactory
        self.user_ids: List[str] = []
        self.shipment_ids: List[str] = []

    async def user(self, balance: str = "0.00") -> UserWallet:
        user_id = self.factory.make_user_id()
        await self.repository.upsert_user(user_id, self.factory.make_email(user_id), "Integration User")
        self.user_ids.append(user_id)

        amount = Decimal(balance)
        if amount > 0:
            return await self.repository.top_up_wallet(user_id, amount)
        return await self.repository.get_user(user_id)

    async def shipment(self, sender: UserWallet, **overrides) -> Shipment:
        shipment = await self.repository.create_shipment(
            self.factory.make_shipment(sender_id=sender.user_id, **overrides)
        )
        self.shipment_ids.append(shipment.shipment_id)
        return shipment

    async def accepted(self, sender: UserWallet, traveler: UserWallet) -> Shipment:
        shipment = await self.shipment(sender)
        return await self.repository.direct_accept(shipment.shipment_id, traveler.user_id)

    async def in_transit(self, sender: UserWallet, traveler: UserWallet) -> Shipment:
        shipment = await self.accepted(sender, traveler)
        return await self.repository.transition_status(
            shipment.shipment_id, traveler.user_id,
            ShipmentStatus.ACCEPTED, ShipmentStatus.IN_TRANSIT, "picked_up_at",
        )

    async def delivered(self, sender: UserWallet, traveler: UserWallet) -> Shipment:
        shipment = await self.in_transit(sender, traveler)
        return await self.repository.transition_status(
            shipment.shipment_id, traveler.user_id,
            ShipmentStatus.IN_TRANSIT, ShipmentStatus.DELIVERED, "delivered_at",
        )

    async def cleanup(self):
        repo = self.repository
        async with repo.db.transaction() as conn:
            # Bids and ratings cascade with their shipment
            await conn.execute(
                f"DELETE FROM {repo.shipments_table} WHERE shipment_id = ANY($1::text[])",
                self.shipment_ids,
            )
            await conn.execute(
                f"DELETE FROM {repo.transactions_table} WHERE user_id = ANY($1::text[])",
                self.user_ids,
            )
            await conn.execute(
                f"DELETE FROM {repo.users_table} WHERE user_id = ANY($1::text[])",
                self.user_ids,
            )


# ============================================================================
# Helper Functions
# ============================================================================

async def get_wallet_balance(repository: MarketplaceRepository, user_id: str) -> Decimal:
    """Get a user's wallet balance"""
    wallet = await repository.get_user(user_id)
    return wallet.wallet_balance


async def count_bids(repository: MarketplaceRepository, shipment_id: str, status: str) -> int:
    """Count a shipment's bids in one status"""
    row = await repository.db.query_row(
        f"SELECT count(*) AS n FROM {repository.bids_table} WHERE shipment_id = $1 AND status = $2",
        [shipment_id, status],
    )
    return row["n"]


async def get_ledger_types(repository: MarketplaceRepository, shipment_id: str) -> List[str]:
    """Ledger entry types written for a shipment, oldest first"""
    rows = await repository.db.query(
        f'''
        SELECT transaction_type FROM {repository.transactions_table}
        WHERE shipment_id = $1
        ORDER BY created_at, transaction_type
        ''',
        [shipment_id],
    )
    return [r["transaction_type"] for r in rows]
