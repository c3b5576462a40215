"""
Marketplace Service Component Test Fixtures

Provides mocks for marketplace service component testing:
- MockMarketplaceRepository: in-memory MarketplaceRepositoryProtocol with the
  same compare-and-swap guards and all-or-nothing transactions as Postgres
- MockEventBus: records published events and routes them to subscribers
- MockRouteClient / MockGeocodingClient / MockNotificationClient: provider doubles
"""

import asyncio
import copy
import itertools
import uuid
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from core.config import PlatformConfig
from core.config_manager import ConfigManager
from microservices.marketplace_service.factory import build_marketplace_services
from microservices.marketplace_service.models import (
    Bid,
    BidStatus,
    GeocodeResult,
    NotificationKind,
    Rating,
    Shipment,
    ShipmentStatus,
    UserWallet,
    WalletTransaction,
    WalletTransactionType,
)
from microservices.marketplace_service.protocols import (
    AlreadyRatedError,
    BidLimitExceededError,
    BidStaleError,
    DuplicatePendingBidError,
    InsufficientFundsError,
    NotEligibleError,
    NotFoundError,
    ShipmentStateConflictError,
)
from tests.contracts.marketplace.data_contract import MarketplaceTestDataFactory


# =============================================================================
# Mock Repository Implementation
# =============================================================================


class MockMarketplaceRepository:
    """
    Mock implementation of MarketplaceRepositoryProtocol for testing.

    Multi-row operations hold a lock and work on copies that are only
    written back when every guard passed, so a failure leaves no trace.
    Reads yield to the event loop once to let concurrent callers interleave.
    """

    def __init__(self):
        self.users: Dict[str, UserWallet] = {}
        self.shipments: Dict[str, Shipment] = {}
        self.bids: Dict[str, Bid] = {}
        self.transactions: List[WalletTransaction] = []
        self.ratings: Dict[str, Rating] = {}  # shipment id -> rating

        # Track method calls for verification
        self.method_calls: List[Tuple] = []

        self._lock = asyncio.Lock()
        self._clock = itertools.count()
        self._epoch = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def _now(self) -> datetime:
        # Strictly increasing so newest-first ordering is deterministic
        return self._epoch + timedelta(seconds=next(self._clock))

    # ---- seeding helpers ----

    def add_user(self, wallet: UserWallet) -> UserWallet:
        self.users[wallet.user_id] = wallet.model_copy()
        return wallet

    def add_shipment(self, shipment: Shipment) -> Shipment:
        stamp = self._now()
        self.shipments[shipment.shipment_id] = shipment.model_copy(
            update={"created_at": stamp, "updated_at": stamp}
        )
        return self.shipments[shipment.shipment_id].model_copy()

    def add_bid(self, bid: Bid) -> Bid:
        stamp = self._now()
        self.bids[bid.bid_id] = bid.model_copy(update={"created_at": stamp, "updated_at": stamp})
        return self.bids[bid.bid_id].model_copy()

    def balance(self, user_id: str) -> Decimal:
        return self.users[user_id].wallet_balance

    def ledger_for(self, user_id: str) -> List[WalletTransaction]:
        return [t for t in self.transactions if t.user_id == user_id]

    def bids_on(self, shipment_id: str) -> List[Bid]:
        return [b for b in self.bids.values() if b.shipment_id == shipment_id]

    # ---- users / wallets ----

    async def upsert_user(self, user_id: str, email: Optional[str], full_name: Optional[str]) -> UserWallet:
        self.method_calls.append(("upsert_user", user_id))
        existing = self.users.get(user_id)
        if existing is None:
            stamp = self._now()
            existing = UserWallet(
                user_id=user_id, email=email, full_name=full_name, created_at=stamp, updated_at=stamp
            )
        else:
            existing = existing.model_copy(update={
                "email": email or existing.email,
                "full_name": full_name or existing.full_name,
                "updated_at": self._now(),
            })
        self.users[user_id] = existing
        return existing.model_copy()

    async def get_user(self, user_id: str) -> Optional[UserWallet]:
        self.method_calls.append(("get_user", user_id))
        await asyncio.sleep(0)
        wallet = self.users.get(user_id)
        return wallet.model_copy() if wallet else None

    async def top_up_wallet(self, user_id: str, amount: Decimal) -> Optional[UserWallet]:
        self.method_calls.append(("top_up_wallet", user_id, amount))
        async with self._lock:
            wallet = self.users.get(user_id)
            if wallet is None:
                return None
            wallet = wallet.model_copy(update={"wallet_balance": wallet.wallet_balance + amount})
            self.users[user_id] = wallet
            self._ledger(user_id, None, WalletTransactionType.TOP_UP, amount, wallet.wallet_balance)
            return wallet.model_copy()

    async def list_wallet_transactions(self, user_id: str, limit: int = 50) -> List[WalletTransaction]:
        self.method_calls.append(("list_wallet_transactions", user_id, limit))
        rows = sorted(self.ledger_for(user_id), key=lambda t: t.created_at, reverse=True)
        return rows[:limit]

    def _ledger(self, user_id, shipment_id, kind, amount, balance_after, into=None):
        entry = WalletTransaction(
            transaction_id=f"wtx_{uuid.uuid4().hex[:16]}",
            user_id=user_id,
            shipment_id=shipment_id,
            transaction_type=kind,
            amount=amount,
            balance_after=balance_after,
            created_at=self._now(),
        )
        (into if into is not None else self.transactions).append(entry)

    # ---- shipments ----

    async def create_shipment(self, shipment: Shipment) -> Shipment:
        self.method_calls.append(("create_shipment", shipment.shipment_id))
        return self.add_shipment(shipment.model_copy(update={"status": ShipmentStatus.PENDING}))

    async def get_shipment(self, shipment_id: str) -> Optional[Shipment]:
        self.method_calls.append(("get_shipment", shipment_id))
        await asyncio.sleep(0)
        shipment = self.shipments.get(shipment_id)
        return shipment.model_copy() if shipment else None

    async def get_shipments_by_ids(self, shipment_ids: List[str]) -> List[Shipment]:
        self.method_calls.append(("get_shipments_by_ids", list(shipment_ids)))
        return [self.shipments[i].model_copy() for i in shipment_ids if i in self.shipments]

    async def list_pending_shipments(self, exclude_sender_id: Optional[str] = None) -> List[Shipment]:
        self.method_calls.append(("list_pending_shipments", exclude_sender_id))
        rows = [
            s for s in self.shipments.values()
            if s.status == ShipmentStatus.PENDING and s.sender_id != exclude_sender_id
        ]
        return [s.model_copy() for s in sorted(rows, key=lambda s: s.created_at, reverse=True)]

    async def list_traveler_shipments(self, traveler_id: str) -> List[Shipment]:
        self.method_calls.append(("list_traveler_shipments", traveler_id))
        rows = [s for s in self.shipments.values() if s.traveler_id == traveler_id]
        return [s.model_copy() for s in sorted(rows, key=lambda s: s.updated_at, reverse=True)]

    def _update_shipment(self, shipment_id: str, **changes) -> Shipment:
        changes["updated_at"] = self._now()
        updated = self.shipments[shipment_id].model_copy(update=changes)
        self.shipments[shipment_id] = updated
        return updated.model_copy()

    async def direct_accept(self, shipment_id: str, traveler_id: str) -> Optional[Shipment]:
        self.method_calls.append(("direct_accept", shipment_id, traveler_id))
        async with self._lock:
            shipment = self.shipments.get(shipment_id)
            if (
                shipment is None
                or shipment.status != ShipmentStatus.PENDING
                or shipment.bidding_enabled
                or shipment.sender_id == traveler_id
            ):
                return None
            return self._update_shipment(
                shipment_id, status=ShipmentStatus.ACCEPTED, traveler_id=traveler_id
            )

    async def transition_status(
        self,
        shipment_id: str,
        traveler_id: str,
        from_status: ShipmentStatus,
        to_status: ShipmentStatus,
        stamp_field: str,
    ) -> Optional[Shipment]:
        self.method_calls.append(("transition_status", shipment_id, from_status, to_status))
        async with self._lock:
            shipment = self.shipments.get(shipment_id)
            if shipment is None or shipment.traveler_id != traveler_id or shipment.status != from_status:
                return None
            return self._update_shipment(shipment_id, status=to_status, **{stamp_field: self._now()})

    async def cancel_shipment(
        self,
        shipment_id: str,
        expected_status: ShipmentStatus,
        canceller_id: str,
        counterparty_id: Optional[str],
        penalty: Decimal,
        by_traveler: bool,
    ) -> Tuple[Shipment, Optional[Decimal], Optional[Decimal]]:
        self.method_calls.append(("cancel_shipment", shipment_id, canceller_id, penalty, by_traveler))
        async with self._lock:
            shipment = self.shipments.get(shipment_id)
            owner = None
            if shipment is not None:
                owner = shipment.traveler_id if by_traveler else shipment.sender_id
            if shipment is None or shipment.status != expected_status or owner != canceller_id:
                raise ShipmentStateConflictError(
                    f"Shipment {shipment_id} is no longer {expected_status.value}",
                    current_status=shipment.status if shipment else None,
                )

            users = copy.deepcopy(self.users)
            bids = copy.deepcopy(self.bids)
            ledger: List[WalletTransaction] = []
            canceller_balance = counterparty_balance = None

            if penalty > 0:
                canceller = users.get(canceller_id)
                available = canceller.wallet_balance if canceller else Decimal("0.00")
                if canceller is None or available - penalty < 0:
                    raise InsufficientFundsError(
                        f"Insufficient balance to cover cancellation penalty of {penalty}",
                        available=available,
                        required=penalty,
                    )
                canceller_balance = available - penalty
                users[canceller_id] = canceller.model_copy(update={"wallet_balance": canceller_balance})
                self._ledger(canceller_id, shipment_id, WalletTransactionType.PENALTY_DEBIT,
                             -penalty, canceller_balance, into=ledger)

                if counterparty_id:
                    counterparty = users.get(counterparty_id)
                    if counterparty is None:
                        raise NotFoundError(f"Wallet not found for user {counterparty_id}")
                    counterparty_balance = counterparty.wallet_balance + penalty
                    users[counterparty_id] = counterparty.model_copy(
                        update={"wallet_balance": counterparty_balance}
                    )
                    self._ledger(counterparty_id, shipment_id, WalletTransactionType.PENALTY_CREDIT,
                                 penalty, counterparty_balance, into=ledger)

            if by_traveler:
                for bid_id, bid in bids.items():
                    if (bid.shipment_id == shipment_id and bid.traveler_id == canceller_id
                            and bid.status == BidStatus.ACCEPTED):
                        bids[bid_id] = bid.model_copy(update={"status": BidStatus.WITHDRAWN})
            else:
                for bid_id, bid in bids.items():
                    if bid.shipment_id == shipment_id and bid.status == BidStatus.PENDING:
                        bids[bid_id] = bid.model_copy(update={"status": BidStatus.REJECTED})

            # Commit
            self.users = users
            self.bids = bids
            self.transactions.extend(ledger)
            if by_traveler:
                updated = self._update_shipment(
                    shipment_id, status=ShipmentStatus.PENDING, traveler_id=None, accepted_bid_id=None,
                    picked_up_at=None,
                )
            else:
                stamp = self._now()
                updated = self._update_shipment(
                    shipment_id,
                    status=ShipmentStatus.CANCELLED,
                    cancelled_by=canceller_id,
                    cancellation_penalty=penalty,
                    cancelled_at=stamp,
                )
            return updated, canceller_balance, counterparty_balance

    async def release_shipments(self, shipment_ids: List[str], traveler_id: str) -> List[Shipment]:
        self.method_calls.append(("release_shipments", list(shipment_ids), traveler_id))
        async with self._lock:
            released = []
            for shipment_id in shipment_ids:
                shipment = self.shipments.get(shipment_id)
                if (shipment is None or shipment.traveler_id != traveler_id
                        or shipment.status != ShipmentStatus.ACCEPTED):
                    continue
                released.append(self._update_shipment(
                    shipment_id, status=ShipmentStatus.PENDING, traveler_id=None, accepted_bid_id=None
                ))
                for bid_id, bid in list(self.bids.items()):
                    if (bid.shipment_id == shipment_id and bid.traveler_id == traveler_id
                            and bid.status == BidStatus.ACCEPTED):
                        self.bids[bid_id] = bid.model_copy(update={"status": BidStatus.WITHDRAWN})
            return released

    # ---- bids ----

    async def get_bid(self, bid_id: str) -> Optional[Bid]:
        self.method_calls.append(("get_bid", bid_id))
        await asyncio.sleep(0)
        bid = self.bids.get(bid_id)
        return bid.model_copy() if bid else None

    async def list_bids_for_shipment(self, shipment_id: str) -> List[Bid]:
        self.method_calls.append(("list_bids_for_shipment", shipment_id))
        rows = sorted(self.bids_on(shipment_id), key=lambda b: b.created_at, reverse=True)
        return [b.model_copy() for b in rows]

    async def list_bids_by_traveler(self, traveler_id: str) -> List[Bid]:
        self.method_calls.append(("list_bids_by_traveler", traveler_id))
        rows = [b for b in self.bids.values() if b.traveler_id == traveler_id]
        return [b.model_copy() for b in sorted(rows, key=lambda b: b.created_at, reverse=True)]

    async def create_bid(
        self, shipment_id: str, traveler_id: str, offered_price: Decimal, max_bids: int
    ) -> Bid:
        self.method_calls.append(("create_bid", shipment_id, traveler_id, offered_price))
        async with self._lock:
            shipment = self.shipments.get(shipment_id)
            if shipment is None:
                raise NotFoundError(f"Shipment not found: {shipment_id}")
            if (shipment.status != ShipmentStatus.PENDING or not shipment.bidding_enabled
                    or shipment.sender_id == traveler_id):
                raise NotEligibleError("Shipment is not open for bidding")

            mine = [b for b in self.bids_on(shipment_id) if b.traveler_id == traveler_id]
            if any(b.status == BidStatus.PENDING for b in mine):
                raise DuplicatePendingBidError("You already have a pending bid on this shipment")
            if len(mine) >= max_bids:
                raise BidLimitExceededError(
                    f"Bid limit reached: at most {max_bids} bids per shipment", limit=max_bids
                )

            return self.add_bid(Bid(
                bid_id=MarketplaceTestDataFactory.make_bid_id(),
                shipment_id=shipment_id,
                traveler_id=traveler_id,
                offered_price=offered_price,
                status=BidStatus.PENDING,
            ))

    async def set_bid_status(
        self, bid_id: str, from_status: str, to_status: str, traveler_id: Optional[str] = None
    ) -> Optional[Bid]:
        self.method_calls.append(("set_bid_status", bid_id, from_status, to_status))
        async with self._lock:
            bid = self.bids.get(bid_id)
            if bid is None or bid.status.value != from_status:
                return None
            if traveler_id is not None and bid.traveler_id != traveler_id:
                return None
            updated = bid.model_copy(update={"status": BidStatus(to_status), "updated_at": self._now()})
            self.bids[bid_id] = updated
            return updated.model_copy()

    def _reject_pending(self, shipment_id: str, keep_bid_id: Optional[str] = None) -> int:
        count = 0
        for bid_id, bid in list(self.bids.items()):
            if bid.shipment_id == shipment_id and bid.status == BidStatus.PENDING and bid_id != keep_bid_id:
                self.bids[bid_id] = bid.model_copy(update={"status": BidStatus.REJECTED})
                count += 1
        return count

    async def reject_pending_bids(self, shipment_id: str) -> int:
        self.method_calls.append(("reject_pending_bids", shipment_id))
        async with self._lock:
            return self._reject_pending(shipment_id)

    async def accept_bid(self, bid_id: str) -> Tuple[Shipment, Bid, int]:
        self.method_calls.append(("accept_bid", bid_id))
        async with self._lock:
            bid = self.bids.get(bid_id)
            if bid is None:
                raise NotFoundError(f"Bid not found: {bid_id}")
            shipment = self.shipments.get(bid.shipment_id)
            if shipment is None or shipment.status != ShipmentStatus.PENDING:
                raise ShipmentStateConflictError(
                    "Shipment is no longer available",
                    current_status=shipment.status if shipment else None,
                )
            if bid.status != BidStatus.PENDING:
                raise BidStaleError("Bid is no longer pending")

            locked = self._update_shipment(
                bid.shipment_id,
                status=ShipmentStatus.ACCEPTED,
                traveler_id=bid.traveler_id,
                accepted_bid_id=bid_id,
                offer_price=bid.offered_price,
            )
            accepted = bid.model_copy(update={"status": BidStatus.ACCEPTED, "updated_at": self._now()})
            self.bids[bid_id] = accepted
            rejected = self._reject_pending(bid.shipment_id, keep_bid_id=bid_id)
            return locked, accepted.model_copy(), rejected

    async def accept_initial_price(self, shipment_id: str, traveler_id: str) -> Tuple[Shipment, Bid, int]:
        self.method_calls.append(("accept_initial_price", shipment_id, traveler_id))
        async with self._lock:
            shipment = self.shipments.get(shipment_id)
            if (shipment is None or shipment.status != ShipmentStatus.PENDING
                    or not shipment.auto_accept_initial_price or shipment.sender_id == traveler_id):
                raise ShipmentStateConflictError(
                    "Shipment has already been taken",
                    current_status=shipment.status if shipment else None,
                )

            bid = self.add_bid(Bid(
                bid_id=MarketplaceTestDataFactory.make_bid_id(),
                shipment_id=shipment_id,
                traveler_id=traveler_id,
                offered_price=shipment.offer_price,
                status=BidStatus.ACCEPTED,
            ))
            locked = self._update_shipment(
                shipment_id, status=ShipmentStatus.ACCEPTED, traveler_id=traveler_id, accepted_bid_id=bid.bid_id
            )
            rejected = self._reject_pending(shipment_id)
            return locked, bid, rejected

    # ---- ratings ----

    async def create_rating(self, rating: Rating) -> Rating:
        self.method_calls.append(("create_rating", rating.shipment_id, rating.rating))
        async with self._lock:
            if rating.shipment_id in self.ratings:
                raise AlreadyRatedError("You have already rated this shipment")
            stored = rating.model_copy(update={"created_at": self._now()})
            self.ratings[rating.shipment_id] = stored
            return stored.model_copy()

    async def get_rating_for_shipment(self, shipment_id: str) -> Optional[Rating]:
        self.method_calls.append(("get_rating_for_shipment", shipment_id))
        rating = self.ratings.get(shipment_id)
        return rating.model_copy() if rating else None

    async def list_traveler_ratings(self, traveler_id: str, limit: int = 10) -> List[Rating]:
        self.method_calls.append(("list_traveler_ratings", traveler_id, limit))
        rows = sorted(
            (r for r in self.ratings.values() if r.traveler_id == traveler_id),
            key=lambda r: r.created_at,
            reverse=True,
        )
        return [
            r.model_copy(update={"shipment_title": self.shipments[r.shipment_id].title})
            for r in rows[:limit]
        ]

    async def get_traveler_rating_stats(self, traveler_id: str) -> Tuple[int, Optional[Decimal]]:
        self.method_calls.append(("get_traveler_rating_stats", traveler_id))
        scores = [r.rating for r in self.ratings.values() if r.traveler_id == traveler_id]
        if not scores:
            return 0, None
        average = (Decimal(sum(scores)) / len(scores)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        return len(scores), average


# =============================================================================
# Mock Event Bus
# =============================================================================


def subject_matches(pattern: str, subject: str) -> bool:
    """NATS wildcard match: '*' is one token, '>' the remaining tokens"""
    pattern_tokens = pattern.split(".")
    subject_tokens = subject.split(".")
    for i, token in enumerate(pattern_tokens):
        if token == ">":
            return len(subject_tokens) > i
        if i >= len(subject_tokens):
            return False
        if token != "*" and token != subject_tokens[i]:
            return False
    return len(pattern_tokens) == len(subject_tokens)


class MockEventBus:
    """Mock for NATS event bus"""

    def __init__(self):
        self.published_events: List[Dict[str, Any]] = []
        self.subscriptions: Dict[str, Tuple[str, Callable]] = {}
        self._should_raise: Optional[Exception] = None

    async def publish_event(self, event: Any) -> bool:
        """Record the event and deliver it to matching subscribers"""
        if self._should_raise:
            raise self._should_raise

        self.published_events.append({
            "id": event.id,
            "type": event.type,
            "subject": event.nats_subject,
            "source": event.source,
            "data": event.data,
        })
        for pattern, handler in list(self.subscriptions.values()):
            if subject_matches(pattern, event.nats_subject):
                await handler(event)
        return True

    async def subscribe_to_events(self, pattern: str, handler: Callable, durable: Optional[str] = None) -> str:
        subscription_id = durable or f"{pattern}#{uuid.uuid4().hex[:8]}"
        self.subscriptions[subscription_id] = (pattern, handler)
        return subscription_id

    async def unsubscribe(self, subscription_id: str) -> bool:
        return self.subscriptions.pop(subscription_id, None) is not None

    async def close(self):
        self.subscriptions.clear()

    # Test helper methods

    def set_error(self, error: Exception):
        self._should_raise = error

    def get_published(self, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get published events, optionally filtered by type"""
        if event_type:
            event_type = getattr(event_type, "value", event_type)
            return [e for e in self.published_events if e["type"] == event_type]
        return self.published_events

    def published_types(self) -> List[str]:
        return [e["type"] for e in self.published_events]


# =============================================================================
# Provider Doubles
# =============================================================================


class MockRouteClient:
    """Returns a fixed route, or None to simulate an outage"""

    def __init__(self, route: Optional[List[List[float]]] = None):
        self.route = route
        self.calls: List[Tuple[float, float, float, float]] = []
        self.closed = False

    async def compute_route(self, origin_lng, origin_lat, dest_lng, dest_lat):
        self.calls.append((origin_lng, origin_lat, dest_lng, dest_lat))
        return [list(c) for c in self.route] if self.route else None

    async def close(self):
        self.closed = True


class MockGeocodingClient:
    """Canned search hits and reverse labels"""

    def __init__(self, results: Optional[List[GeocodeResult]] = None, label: str = "Mall Road, Lahore"):
        self.results = results or []
        self.label = label
        self.reverse_calls: List[Tuple[float, float]] = []
        self.closed = False

    async def search(self, text: str) -> List[GeocodeResult]:
        return list(self.results)

    async def reverse(self, lat: float, lng: float) -> str:
        self.reverse_calls.append((lat, lng))
        return self.label

    async def close(self):
        self.closed = True


class MockNotificationClient:
    """Records outbound notifications"""

    def __init__(self):
        self.sent: List[Tuple[NotificationKind, str, Dict[str, Any]]] = []
        self._should_raise: Optional[Exception] = None
        self.closed = False

    async def notify(self, kind: NotificationKind, recipient_email: str, payload: Dict[str, Any]) -> bool:
        if self._should_raise:
            raise self._should_raise
        self.sent.append((kind, recipient_email, payload))
        return True

    def set_error(self, error: Exception):
        self._should_raise = error

    def sent_kinds(self) -> List[NotificationKind]:
        return [kind for kind, _, _ in self.sent]

    async def close(self):
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def config_manager() -> ConfigManager:
    """Default platform settings; no environment involved"""
    return ConfigManager("marketplace_service", settings=PlatformConfig())


@pytest.fixture
def mock_repository() -> MockMarketplaceRepository:
    return MockMarketplaceRepository()


@pytest.fixture
def mock_event_bus() -> MockEventBus:
    return MockEventBus()


@pytest.fixture
def mock_route_client(data_factory) -> MockRouteClient:
    return MockRouteClient(route=data_factory.make_route())


@pytest.fixture
def mock_geocoding_client() -> MockGeocodingClient:
    return MockGeocodingClient(results=[
        GeocodeResult(lat=31.5204, lon=74.3587, display_name="Lahore, Punjab, Pakistan"),
    ])


@pytest.fixture
def mock_notification_client() -> MockNotificationClient:
    return MockNotificationClient()


@pytest.fixture
def services(
    config_manager,
    mock_repository,
    mock_event_bus,
    mock_route_client,
    mock_geocoding_client,
    mock_notification_client,
):
    """Fully wired MarketplaceServices around the mocks"""
    return build_marketplace_services(
        repository=mock_repository,
        config=config_manager,
        event_bus=mock_event_bus,
        route_client=mock_route_client,
        geocoding_client=mock_geocoding_client,
        notification_client=mock_notification_client,
    )


@pytest.fixture
def sender(mock_repository, data_factory) -> UserWallet:
    """Sender with 1000.00 in the wallet"""
    return mock_repository.add_user(data_factory.make_wallet(balance="1000.00", full_name="Sana Sender"))


@pytest.fixture
def traveler(mock_repository, data_factory) -> UserWallet:
    """Traveler with 500.00 in the wallet"""
    return mock_repository.add_user(data_factory.make_wallet(balance="500.00", full_name="Tariq Traveler"))


@pytest.fixture
def other_traveler(mock_repository, data_factory) -> UserWallet:
    return mock_repository.add_user(data_factory.make_wallet(balance="500.00", full_name="Omar Other"))


@pytest.fixture
def bidding_shipment(mock_repository, data_factory, sender) -> Shipment:
    """Pending bidding shipment at 100.00"""
    return mock_repository.add_shipment(
        data_factory.make_shipment(sender_id=sender.user_id, bidding_enabled=True)
    )


@pytest.fixture
def fixed_price_shipment(mock_repository, data_factory, sender) -> Shipment:
    """Pending non-bidding shipment at 100.00"""
    return mock_repository.add_shipment(data_factory.make_shipment(sender_id=sender.user_id))


@pytest.fixture
def accepted_shipment(mock_repository, data_factory, sender, traveler) -> Shipment:
    """Shipment at 100.00 held by traveler, not yet picked up"""
    return mock_repository.add_shipment(data_factory.make_shipment(
        sender_id=sender.user_id, traveler_id=traveler.user_id, status=ShipmentStatus.ACCEPTED
    ))


@pytest.fixture
def in_transit_shipment(mock_repository, data_factory, sender, traveler) -> Shipment:
    """Shipment at 100.00 picked up by traveler"""
    return mock_repository.add_shipment(data_factory.make_shipment(
        sender_id=sender.user_id, traveler_id=traveler.user_id, status=ShipmentStatus.IN_TRANSIT
    ))


@pytest.fixture
def delivered_shipment(mock_repository, data_factory, sender, traveler) -> Shipment:
    """Shipment at 100.00 delivered by traveler"""
    return mock_repository.add_shipment(data_factory.make_shipment(
        sender_id=sender.user_id, traveler_id=traveler.user_id, status=ShipmentStatus.DELIVERED
    ))
