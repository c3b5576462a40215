"""
Marketplace Service Data Repository

Data access layer - PostgreSQL (asyncpg)
Implements MarketplaceRepositoryProtocol from protocols.py

Every status change is a compare-and-swap (`UPDATE ... WHERE status = $n`).
Operations spanning several rows run inside one transaction and raise a
MarketplaceError to roll back when a guard does not hold.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import asyncpg

from core.config_manager import ConfigManager
from core.postgres_client import PostgresClient

from .models import (
    Bid,
    BidStatus,
    GeoPoint,
    Rating,
    Shipment,
    ShipmentStatus,
    UserWallet,
    WalletTransaction,
    WalletTransactionType,
)
from .protocols import (
    AlreadyRatedError,
    BidLimitExceededError,
    BidStaleError,
    DuplicatePendingBidError,
    InsufficientFundsError,
    NotEligibleError,
    NotFoundError,
    ShipmentStateConflictError,
)

logger = logging.getLogger(__name__)

STAMP_FIELDS = {"picked_up_at", "delivered_at"}


def _affected(status: str) -> int:
    """Row count from an asyncpg command status such as 'UPDATE 3'"""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class MarketplaceRepository:
    """Marketplace data repository - PostgreSQL (Async)"""

    def __init__(self, config: Optional[ConfigManager] = None, db: Optional[PostgresClient] = None):
        if config is None:
            config = ConfigManager("marketplace_service")

        self.config = config
        self.db = db or PostgresClient(service_name="marketplace_service")
        self.schema = "marketplace"
        self.users_table = f"{self.schema}.users"
        self.shipments_table = f"{self.schema}.shipments"
        self.bids_table = f"{self.schema}.bids"
        self.transactions_table = f"{self.schema}.wallet_transactions"
        self.ratings_table = f"{self.schema}.ratings"

    async def initialize(self):
        """Open the pool and make sure the schema exists"""
        statements = [
            f"CREATE SCHEMA IF NOT EXISTS {self.schema}",
            f'''
            CREATE TABLE IF NOT EXISTS {self.users_table} (
                user_id TEXT PRIMARY KEY,
                email TEXT,
                full_name TEXT,
                wallet_balance NUMERIC(12, 2) NOT NULL DEFAULT 0 CHECK (wallet_balance >= 0),
                created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
            ''',
            f'''
            CREATE TABLE IF NOT EXISTS {self.shipments_table} (
                shipment_id TEXT PRIMARY KEY,
                sender_id TEXT NOT NULL,
                traveler_id TEXT,
                title TEXT NOT NULL,
                description TEXT,
                weight_kg DOUBLE PRECISION NOT NULL CHECK (weight_kg > 0),
                offer_price NUMERIC(12, 2) NOT NULL CHECK (offer_price > 0),
                pickup_address TEXT,
                dropoff_address TEXT,
                pickup_lng DOUBLE PRECISION,
                pickup_lat DOUBLE PRECISION,
                dropoff_lng DOUBLE PRECISION,
                dropoff_lat DOUBLE PRECISION,
                pickup_otp CHAR(4) NOT NULL,
                delivery_otp CHAR(4) NOT NULL,
                bidding_enabled BOOLEAN NOT NULL DEFAULT false,
                auto_accept_initial_price BOOLEAN NOT NULL DEFAULT false,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'accepted', 'in_transit', 'delivered', 'cancelled')),
                accepted_bid_id TEXT,
                cancelled_by TEXT,
                cancellation_penalty NUMERIC(12, 2),
                cancelled_at TIMESTAMPTZ,
                picked_up_at TIMESTAMPTZ,
                delivered_at TIMESTAMPTZ,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                CHECK (status NOT IN ('accepted', 'in_transit', 'delivered') OR traveler_id IS NOT NULL),
                CHECK (status <> 'pending' OR traveler_id IS NULL)
            )
            ''',
            f'''
            CREATE TABLE IF NOT EXISTS {self.bids_table} (
                bid_id TEXT PRIMARY KEY,
                shipment_id TEXT NOT NULL REFERENCES {self.shipments_table} (shipment_id) ON DELETE CASCADE,
                traveler_id TEXT NOT NULL,
                offered_price NUMERIC(12, 2) NOT NULL CHECK (offered_price > 0),
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'accepted', 'rejected', 'withdrawn')),
                created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
            ''',
            f'''
            CREATE UNIQUE INDEX IF NOT EXISTS bids_one_pending_per_traveler
                ON {self.bids_table} (shipment_id, traveler_id) WHERE status = 'pending'
            ''',
            f'''
            CREATE UNIQUE INDEX IF NOT EXISTS bids_one_accepted_per_shipment
                ON {self.bids_table} (shipment_id) WHERE status = 'accepted'
            ''',
            f'''
            CREATE TABLE IF NOT EXISTS {self.transactions_table} (
                transaction_id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                shipment_id TEXT,
                transaction_type TEXT NOT NULL,
                amount NUMERIC(12, 2) NOT NULL,
                balance_after NUMERIC(12, 2) NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
            ''',
            f'''
            CREATE TABLE IF NOT EXISTS {self.ratings_table} (
                rating_id TEXT PRIMARY KEY,
                shipment_id TEXT NOT NULL UNIQUE REFERENCES {self.shipments_table} (shipment_id) ON DELETE CASCADE,
                sender_id TEXT NOT NULL,
                traveler_id TEXT NOT NULL,
                rating SMALLINT NOT NULL CHECK (rating BETWEEN 1 AND 5),
                comment TEXT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
            ''',
            f"CREATE INDEX IF NOT EXISTS shipments_status_idx ON {self.shipments_table} (status)",
            f"CREATE INDEX IF NOT EXISTS shipments_traveler_idx ON {self.shipments_table} (traveler_id)",
            f"CREATE INDEX IF NOT EXISTS bids_traveler_idx ON {self.bids_table} (traveler_id)",
            f"CREATE INDEX IF NOT EXISTS wallet_transactions_user_idx ON {self.transactions_table} (user_id)",
            f"CREATE INDEX IF NOT EXISTS ratings_traveler_idx ON {self.ratings_table} (traveler_id)",
        ]

        async with self.db.transaction() as conn:
            for statement in statements:
                await conn.execute(statement)

        logger.info("Marketplace repository initialized with PostgreSQL")

    async def close(self):
        """Close database connection"""
        await self.db.close()
        logger.info("Marketplace repository database connection closed")

    # ====================
    # Users / Wallets
    # ====================

    async def upsert_user(self, user_id: str, email: Optional[str], full_name: Optional[str]) -> UserWallet:
        """Create the wallet row if missing, refresh email/name otherwise"""
        query = f'''
            INSERT INTO {self.users_table} AS u (user_id, email, full_name)
            VALUES ($1, $2, $3)
            ON CONFLICT (user_id) DO UPDATE SET
                email = COALESCE(EXCLUDED.email, u.email),
                full_name = COALESCE(EXCLUDED.full_name, u.full_name),
                updated_at = now()
            RETURNING *
        '''
        row = await self.db.query_row(query, [user_id, email, full_name])
        return self._row_to_user(row)

    async def get_user(self, user_id: str) -> Optional[UserWallet]:
        row = await self.db.query_row(
            f"SELECT * FROM {self.users_table} WHERE user_id = $1", [user_id]
        )
        return self._row_to_user(row) if row else None

    async def top_up_wallet(self, user_id: str, amount: Decimal) -> Optional[UserWallet]:
        """Credit a wallet and write a top_up ledger row"""
        async with self.db.transaction() as conn:
            row = await conn.fetchrow(
                f'''
                UPDATE {self.users_table}
                SET wallet_balance = wallet_balance + $2, updated_at = now()
                WHERE user_id = $1
                RETURNING *
                ''',
                user_id, amount,
            )
            if row is None:
                return None

            await self._insert_ledger(
                conn, user_id, None, WalletTransactionType.TOP_UP, amount, row["wallet_balance"]
            )

        return self._row_to_user(row)

    async def list_wallet_transactions(self, user_id: str, limit: int = 50) -> List[WalletTransaction]:
        rows = await self.db.query(
            f'''
            SELECT * FROM {self.transactions_table}
            WHERE user_id = $1
            ORDER BY created_at DESC
            LIMIT $2
            ''',
            [user_id, limit],
        )
        return [self._row_to_transaction(r) for r in rows]

    # ====================
    # Shipments
    # ====================

    async def create_shipment(self, shipment: Shipment) -> Shipment:
        query = f'''
            INSERT INTO {self.shipments_table} (
                shipment_id, sender_id, title, description, weight_kg, offer_price,
                pickup_address, dropoff_address, pickup_lng, pickup_lat, dropoff_lng, dropoff_lat,
                pickup_otp, delivery_otp, bidding_enabled, auto_accept_initial_price, status
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17)
            RETURNING *
        '''
        pickup = shipment.pickup_location
        dropoff = shipment.dropoff_location
        params = [
            shipment.shipment_id,
            shipment.sender_id,
            shipment.title,
            shipment.description,
            shipment.weight_kg,
            shipment.offer_price,
            shipment.pickup_address,
            shipment.dropoff_address,
            pickup.lng if pickup else None,
            pickup.lat if pickup else None,
            dropoff.lng if dropoff else None,
            dropoff.lat if dropoff else None,
            shipment.pickup_otp,
            shipment.delivery_otp,
            shipment.bidding_enabled,
            shipment.auto_accept_initial_price,
            ShipmentStatus.PENDING.value,
        ]

        row = await self.db.query_row(query, params)
        if not row:
            raise Exception("Failed to create shipment")
        return self._row_to_shipment(row)

    async def get_shipment(self, shipment_id: str) -> Optional[Shipment]:
        row = await self.db.query_row(
            f"SELECT * FROM {self.shipments_table} WHERE shipment_id = $1", [shipment_id]
        )
        return self._row_to_shipment(row) if row else None

    async def get_shipments_by_ids(self, shipment_ids: List[str]) -> List[Shipment]:
        if not shipment_ids:
            return []
        rows = await self.db.query(
            f"SELECT * FROM {self.shipments_table} WHERE shipment_id = ANY($1::text[])",
            [list(shipment_ids)],
        )
        return [self._row_to_shipment(r) for r in rows]

    async def list_pending_shipments(self, exclude_sender_id: Optional[str] = None) -> List[Shipment]:
        if exclude_sender_id:
            rows = await self.db.query(
                f'''
                SELECT * FROM {self.shipments_table}
                WHERE status = 'pending' AND sender_id <> $1
                ORDER BY created_at DESC
                ''',
                [exclude_sender_id],
            )
        else:
            rows = await self.db.query(
                f"SELECT * FROM {self.shipments_table} WHERE status = 'pending' ORDER BY created_at DESC"
            )
        return [self._row_to_shipment(r) for r in rows]

    async def list_traveler_shipments(self, traveler_id: str) -> List[Shipment]:
        rows = await self.db.query(
            f'''
            SELECT * FROM {self.shipments_table}
            WHERE traveler_id = $1
            ORDER BY updated_at DESC
            ''',
            [traveler_id],
        )
        return [self._row_to_shipment(r) for r in rows]

    async def direct_accept(self, shipment_id: str, traveler_id: str) -> Optional[Shipment]:
        row = await self.db.query_row(
            f'''
            UPDATE {self.shipments_table}
            SET status = 'accepted', traveler_id = $2, updated_at = now()
            WHERE shipment_id = $1
              AND status = 'pending'
              AND bidding_enabled = false
              AND sender_id <> $2
            RETURNING *
            ''',
            [shipment_id, traveler_id],
        )
        return self._row_to_shipment(row) if row else None

    async def transition_status(
        self,
        shipment_id: str,
        traveler_id: str,
        from_status: ShipmentStatus,
        to_status: ShipmentStatus,
        stamp_field: str,
    ) -> Optional[Shipment]:
        if stamp_field not in STAMP_FIELDS:
            raise ValueError(f"Unsupported timestamp column: {stamp_field}")

        row = await self.db.query_row(
            f'''
            UPDATE {self.shipments_table}
            SET status = $4, {stamp_field} = now(), updated_at = now()
            WHERE shipment_id = $1 AND traveler_id = $2 AND status = $3
            RETURNING *
            ''',
            [shipment_id, traveler_id, from_status.value, to_status.value],
        )
        return self._row_to_shipment(row) if row else None

    async def cancel_shipment(
        self,
        shipment_id: str,
        expected_status: ShipmentStatus,
        canceller_id: str,
        counterparty_id: Optional[str],
        penalty: Decimal,
        by_traveler: bool,
    ) -> Tuple[Shipment, Optional[Decimal], Optional[Decimal]]:
        """Cancel atomically: transition, debit canceller, credit counterparty"""
        canceller_balance: Optional[Decimal] = None
        counterparty_balance: Optional[Decimal] = None

        async with self.db.transaction() as conn:
            if by_traveler:
                # Back to the open pool; the held bid no longer wins
                await conn.execute(
                    f'''
                    UPDATE {self.bids_table}
                    SET status = 'withdrawn', updated_at = now()
                    WHERE shipment_id = $1 AND traveler_id = $2 AND status = 'accepted'
                    ''',
                    shipment_id, canceller_id,
                )
                row = await conn.fetchrow(
                    f'''
                    UPDATE {self.shipments_table}
                    SET status = 'pending', traveler_id = NULL, accepted_bid_id = NULL,
                        picked_up_at = NULL, updated_at = now()
                    WHERE shipment_id = $1 AND status = $2 AND traveler_id = $3
                    RETURNING *
                    ''',
                    shipment_id, expected_status.value, canceller_id,
                )
            else:
                row = await conn.fetchrow(
                    f'''
                    UPDATE {self.shipments_table}
                    SET status = 'cancelled', cancelled_by = $3, cancellation_penalty = $4,
                        cancelled_at = now(), updated_at = now()
                    WHERE shipment_id = $1 AND status = $2 AND sender_id = $3
                    RETURNING *
                    ''',
                    shipment_id, expected_status.value, canceller_id, penalty,
                )
                if row is not None:
                    await conn.execute(
                        f'''
                        UPDATE {self.bids_table}
                        SET status = 'rejected', updated_at = now()
                        WHERE shipment_id = $1 AND status = 'pending'
                        ''',
                        shipment_id,
                    )

            if row is None:
                current = await conn.fetchval(
                    f"SELECT status FROM {self.shipments_table} WHERE shipment_id = $1", shipment_id
                )
                raise ShipmentStateConflictError(
                    f"Shipment {shipment_id} is no longer {expected_status.value}",
                    current_status=ShipmentStatus(current) if current else None,
                )

            if penalty > 0:
                canceller_balance = await conn.fetchval(
                    f'''
                    UPDATE {self.users_table}
                    SET wallet_balance = wallet_balance - $2, updated_at = now()
                    WHERE user_id = $1 AND wallet_balance - $2 >= 0
                    RETURNING wallet_balance
                    ''',
                    canceller_id, penalty,
                )
                if canceller_balance is None:
                    available = await conn.fetchval(
                        f"SELECT wallet_balance FROM {self.users_table} WHERE user_id = $1", canceller_id
                    )
                    raise InsufficientFundsError(
                        f"Insufficient balance to cover cancellation penalty of {penalty}",
                        available=available,
                        required=penalty,
                    )
                await self._insert_ledger(
                    conn, canceller_id, shipment_id, WalletTransactionType.PENALTY_DEBIT,
                    -penalty, canceller_balance,
                )

                if counterparty_id:
                    counterparty_balance = await conn.fetchval(
                        f'''
                        UPDATE {self.users_table}
                        SET wallet_balance = wallet_balance + $2, updated_at = now()
                        WHERE user_id = $1
                        RETURNING wallet_balance
                        ''',
                        counterparty_id, penalty,
                    )
                    if counterparty_balance is None:
                        raise NotFoundError(f"Wallet not found for user {counterparty_id}")
                    await self._insert_ledger(
                        conn, counterparty_id, shipment_id, WalletTransactionType.PENALTY_CREDIT,
                        penalty, counterparty_balance,
                    )

        return self._row_to_shipment(row), canceller_balance, counterparty_balance

    async def release_shipments(self, shipment_ids: List[str], traveler_id: str) -> List[Shipment]:
        if not shipment_ids:
            return []

        async with self.db.transaction() as conn:
            rows = await conn.fetch(
                f'''
                UPDATE {self.shipments_table}
                SET status = 'pending', traveler_id = NULL, accepted_bid_id = NULL, updated_at = now()
                WHERE shipment_id = ANY($1::text[]) AND traveler_id = $2 AND status = 'accepted'
                RETURNING *
                ''',
                list(shipment_ids), traveler_id,
            )
            released_ids = [r["shipment_id"] for r in rows]
            if released_ids:
                await conn.execute(
                    f'''
                    UPDATE {self.bids_table}
                    SET status = 'withdrawn', updated_at = now()
                    WHERE shipment_id = ANY($1::text[]) AND traveler_id = $2 AND status = 'accepted'
                    ''',
                    released_ids, traveler_id,
                )

        return [self._row_to_shipment(r) for r in rows]

    # ====================
    # Bids
    # ====================

    async def get_bid(self, bid_id: str) -> Optional[Bid]:
        row = await self.db.query_row(
            f"SELECT * FROM {self.bids_table} WHERE bid_id = $1", [bid_id]
        )
        return self._row_to_bid(row) if row else None

    async def list_bids_for_shipment(self, shipment_id: str) -> List[Bid]:
        rows = await self.db.query(
            f"SELECT * FROM {self.bids_table} WHERE shipment_id = $1 ORDER BY created_at DESC",
            [shipment_id],
        )
        return [self._row_to_bid(r) for r in rows]

    async def list_bids_by_traveler(self, traveler_id: str) -> List[Bid]:
        rows = await self.db.query(
            f"SELECT * FROM {self.bids_table} WHERE traveler_id = $1 ORDER BY created_at DESC",
            [traveler_id],
        )
        return [self._row_to_bid(r) for r in rows]

    async def create_bid(
        self, shipment_id: str, traveler_id: str, offered_price: Decimal, max_bids: int
    ) -> Bid:
        """Insert a pending bid under the shipment row lock"""
        try:
            async with self.db.transaction() as conn:
                shipment = await conn.fetchrow(
                    f'''
                    SELECT status, bidding_enabled, sender_id FROM {self.shipments_table}
                    WHERE shipment_id = $1
                    FOR UPDATE
                    ''',
                    shipment_id,
                )
                if shipment is None:
                    raise NotFoundError(f"Shipment not found: {shipment_id}")
                if (
                    shipment["status"] != ShipmentStatus.PENDING.value
                    or not shipment["bidding_enabled"]
                    or shipment["sender_id"] == traveler_id
                ):
                    raise NotEligibleError("Shipment is not open for bidding")

                has_pending = await conn.fetchval(
                    f'''
                    SELECT EXISTS (
                        SELECT 1 FROM {self.bids_table}
                        WHERE shipment_id = $1 AND traveler_id = $2 AND status = 'pending'
                    )
                    ''',
                    shipment_id, traveler_id,
                )
                if has_pending:
                    raise DuplicatePendingBidError("You already have a pending bid on this shipment")

                placed = await conn.fetchval(
                    f"SELECT count(*) FROM {self.bids_table} WHERE shipment_id = $1 AND traveler_id = $2",
                    shipment_id, traveler_id,
                )
                if placed >= max_bids:
                    raise BidLimitExceededError(
                        f"Bid limit reached: at most {max_bids} bids per shipment", limit=max_bids
                    )

                row = await conn.fetchrow(
                    f'''
                    INSERT INTO {self.bids_table} (bid_id, shipment_id, traveler_id, offered_price, status)
                    VALUES ($1, $2, $3, $4, 'pending')
                    RETURNING *
                    ''',
                    f"bid_{uuid.uuid4().hex[:16]}", shipment_id, traveler_id, offered_price,
                )
        except asyncpg.UniqueViolationError:
            raise DuplicatePendingBidError("You already have a pending bid on this shipment")

        return self._row_to_bid(row)

    async def set_bid_status(
        self, bid_id: str, from_status: str, to_status: str, traveler_id: Optional[str] = None
    ) -> Optional[Bid]:
        if traveler_id is None:
            row = await self.db.query_row(
                f'''
                UPDATE {self.bids_table} SET status = $3, updated_at = now()
                WHERE bid_id = $1 AND status = $2
                RETURNING *
                ''',
                [bid_id, from_status, to_status],
            )
        else:
            row = await self.db.query_row(
                f'''
                UPDATE {self.bids_table} SET status = $3, updated_at = now()
                WHERE bid_id = $1 AND status = $2 AND traveler_id = $4
                RETURNING *
                ''',
                [bid_id, from_status, to_status, traveler_id],
            )
        return self._row_to_bid(row) if row else None

    async def reject_pending_bids(self, shipment_id: str) -> int:
        status = await self.db.execute(
            f'''
            UPDATE {self.bids_table} SET status = 'rejected', updated_at = now()
            WHERE shipment_id = $1 AND status = 'pending'
            ''',
            [shipment_id],
        )
        return _affected(status)

    async def accept_bid(self, bid_id: str) -> Tuple[Shipment, Bid, int]:
        """Accept one bid and lock the shipment in one transaction"""
        async with self.db.transaction() as conn:
            bid = await conn.fetchrow(f"SELECT * FROM {self.bids_table} WHERE bid_id = $1", bid_id)
            if bid is None:
                raise NotFoundError(f"Bid not found: {bid_id}")

            shipment = await conn.fetchrow(
                f'''
                UPDATE {self.shipments_table}
                SET status = 'accepted', traveler_id = $2, accepted_bid_id = $3,
                    offer_price = $4, updated_at = now()
                WHERE shipment_id = $1 AND status = 'pending'
                RETURNING *
                ''',
                bid["shipment_id"], bid["traveler_id"], bid["bid_id"], bid["offered_price"],
            )
            if shipment is None:
                current = await conn.fetchval(
                    f"SELECT status FROM {self.shipments_table} WHERE shipment_id = $1", bid["shipment_id"]
                )
                raise ShipmentStateConflictError(
                    "Shipment is no longer available",
                    current_status=ShipmentStatus(current) if current else None,
                )

            accepted = await conn.fetchrow(
                f'''
                UPDATE {self.bids_table} SET status = 'accepted', updated_at = now()
                WHERE bid_id = $1 AND status = 'pending'
                RETURNING *
                ''',
                bid_id,
            )
            if accepted is None:
                raise BidStaleError("Bid is no longer pending")

            status = await conn.execute(
                f'''
                UPDATE {self.bids_table} SET status = 'rejected', updated_at = now()
                WHERE shipment_id = $1 AND status = 'pending' AND bid_id <> $2
                ''',
                bid["shipment_id"], bid_id,
            )

        return self._row_to_shipment(shipment), self._row_to_bid(accepted), _affected(status)

    async def accept_initial_price(self, shipment_id: str, traveler_id: str) -> Tuple[Shipment, Bid, int]:
        """Synthesize an accepted bid at offer_price and lock the shipment"""
        bid_id = f"bid_{uuid.uuid4().hex[:16]}"

        async with self.db.transaction() as conn:
            shipment = await conn.fetchrow(
                f'''
                UPDATE {self.shipments_table}
                SET status = 'accepted', traveler_id = $2, accepted_bid_id = $3, updated_at = now()
                WHERE shipment_id = $1
                  AND status = 'pending'
                  AND auto_accept_initial_price = true
                  AND sender_id <> $2
                RETURNING *
                ''',
                shipment_id, traveler_id, bid_id,
            )
            if shipment is None:
                current = await conn.fetchval(
                    f"SELECT status FROM {self.shipments_table} WHERE shipment_id = $1", shipment_id
                )
                raise ShipmentStateConflictError(
                    "Shipment has already been taken",
                    current_status=ShipmentStatus(current) if current else None,
                )

            bid = await conn.fetchrow(
                f'''
                INSERT INTO {self.bids_table} (bid_id, shipment_id, traveler_id, offered_price, status)
                VALUES ($1, $2, $3, $4, 'accepted')
                RETURNING *
                ''',
                bid_id, shipment_id, traveler_id, shipment["offer_price"],
            )

            status = await conn.execute(
                f'''
                UPDATE {self.bids_table} SET status = 'rejected', updated_at = now()
                WHERE shipment_id = $1 AND status = 'pending'
                ''',
                shipment_id,
            )

        return self._row_to_shipment(shipment), self._row_to_bid(bid), _affected(status)

    # ====================
    # Ratings
    # ====================

    async def create_rating(self, rating: Rating) -> Rating:
        try:
            row = await self.db.query_row(
                f'''
                INSERT INTO {self.ratings_table}
                    (rating_id, shipment_id, sender_id, traveler_id, rating, comment)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING *
                ''',
                [rating.rating_id, rating.shipment_id, rating.sender_id, rating.traveler_id,
                 rating.rating, rating.comment],
            )
        except asyncpg.UniqueViolationError:
            raise AlreadyRatedError("You have already rated this shipment")

        return self._row_to_rating(row)

    async def get_rating_for_shipment(self, shipment_id: str) -> Optional[Rating]:
        row = await self.db.query_row(
            f"SELECT * FROM {self.ratings_table} WHERE shipment_id = $1", [shipment_id]
        )
        return self._row_to_rating(row) if row else None

    async def list_traveler_ratings(self, traveler_id: str, limit: int = 10) -> List[Rating]:
        rows = await self.db.query(
            f'''
            SELECT r.*, s.title AS shipment_title
            FROM {self.ratings_table} r
            JOIN {self.shipments_table} s ON s.shipment_id = r.shipment_id
            WHERE r.traveler_id = $1
            ORDER BY r.created_at DESC
            LIMIT $2
            ''',
            [traveler_id, limit],
        )
        return [self._row_to_rating(r) for r in rows]

    async def get_traveler_rating_stats(self, traveler_id: str) -> Tuple[int, Optional[Decimal]]:
        row = await self.db.query_row(
            f'''
            SELECT count(*) AS rating_count, round(avg(rating)::numeric, 2) AS average_rating
            FROM {self.ratings_table}
            WHERE traveler_id = $1
            ''',
            [traveler_id],
        )
        return row["rating_count"], row["average_rating"]

    # ====================
    # Helpers
    # ====================

    async def _insert_ledger(
        self,
        conn: asyncpg.Connection,
        user_id: str,
        shipment_id: Optional[str],
        transaction_type: WalletTransactionType,
        amount: Decimal,
        balance_after: Decimal,
    ) -> None:
        await conn.execute(
            f'''
            INSERT INTO {self.transactions_table}
                (transaction_id, user_id, shipment_id, transaction_type, amount, balance_after)
            VALUES ($1, $2, $3, $4, $5, $6)
            ''',
            f"wtx_{uuid.uuid4().hex[:16]}", user_id, shipment_id, transaction_type.value,
            amount, balance_after,
        )

    def _row_to_shipment(self, row: Dict[str, Any]) -> Shipment:
        pickup = None
        if row.get("pickup_lng") is not None and row.get("pickup_lat") is not None:
            pickup = GeoPoint(lng=row["pickup_lng"], lat=row["pickup_lat"])
        dropoff = None
        if row.get("dropoff_lng") is not None and row.get("dropoff_lat") is not None:
            dropoff = GeoPoint(lng=row["dropoff_lng"], lat=row["dropoff_lat"])

        return Shipment(
            shipment_id=row["shipment_id"],
            sender_id=row["sender_id"],
            traveler_id=row.get("traveler_id"),
            title=row["title"],
            description=row.get("description"),
            weight_kg=row["weight_kg"],
            offer_price=row["offer_price"],
            pickup_address=row.get("pickup_address"),
            dropoff_address=row.get("dropoff_address"),
            pickup_location=pickup,
            dropoff_location=dropoff,
            pickup_otp=row.get("pickup_otp"),
            delivery_otp=row.get("delivery_otp"),
            bidding_enabled=row.get("bidding_enabled", False),
            auto_accept_initial_price=row.get("auto_accept_initial_price", False),
            status=ShipmentStatus(row["status"]),
            accepted_bid_id=row.get("accepted_bid_id"),
            cancelled_by=row.get("cancelled_by"),
            cancellation_penalty=row.get("cancellation_penalty"),
            cancelled_at=row.get("cancelled_at"),
            picked_up_at=row.get("picked_up_at"),
            delivered_at=row.get("delivered_at"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def _row_to_bid(self, row: Dict[str, Any]) -> Bid:
        return Bid(
            bid_id=row["bid_id"],
            shipment_id=row["shipment_id"],
            traveler_id=row["traveler_id"],
            offered_price=row["offered_price"],
            status=BidStatus(row["status"]),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def _row_to_user(self, row: Dict[str, Any]) -> UserWallet:
        return UserWallet(
            user_id=row["user_id"],
            email=row.get("email"),
            full_name=row.get("full_name"),
            wallet_balance=row["wallet_balance"],
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def _row_to_transaction(self, row: Dict[str, Any]) -> WalletTransaction:
        return WalletTransaction(
            transaction_id=row["transaction_id"],
            user_id=row["user_id"],
            shipment_id=row.get("shipment_id"),
            transaction_type=WalletTransactionType(row["transaction_type"]),
            amount=row["amount"],
            balance_after=row["balance_after"],
            created_at=row.get("created_at"),
        )

    def _row_to_rating(self, row: Dict[str, Any]) -> Rating:
        return Rating(
            rating_id=row["rating_id"],
            shipment_id=row["shipment_id"],
            sender_id=row["sender_id"],
            traveler_id=row["traveler_id"],
            rating=row["rating"],
            comment=row.get("comment"),
            shipment_title=row.get("shipment_title"),
            created_at=row.get("created_at"),
        )
