"""Settlement bounded context — Order Settlement, Seller Payouts, and Returns.

Turns paid marketplace orders into money owed to independent sellers,
batches seller earnings into payouts, and applies buyer returns against
individual order items. All aggregates are CQRS (not event sourced) because
they are persisted as documents and guarded by optimistic version checks.
"""

import structlog
from protean.domain import Domain

settlement = Domain(name="settlement")

logger = structlog.get_logger(__name__)
