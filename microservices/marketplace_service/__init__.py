"""
Marketplace Service

Peer-to-peer delivery marketplace for the CrowdShip platform.

Features:
- Shipment posting with OTP-gated pickup and delivery
- Bidding with a per-traveler limit and single-winner acceptance
- Cancellation penalties moved between wallets atomically
- Trips derived from held shipments, with bulk release
- Route corridor matching for trip planning
- Event-driven change feed on NATS
"""

__version__ = "1.0.0"
