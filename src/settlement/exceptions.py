"""Settlement error taxonomy.

Every business rejection derives from Protean's ``ValidationError`` so the
FastAPI integration renders it as a 400 with the usual ``{field: [msg]}``
body. Missing documents are signalled with Protean's own
``ObjectNotFoundError``, raised by repositories and re-raised by handlers
when a lookup by secondary key comes back empty.
"""

from protean.exceptions import ValidationError


class InvalidSignature(ValidationError):
    """A gateway signature did not match the recomputed HMAC."""


class MalformedPayload(ValidationError):
    """A verified webhook body could not be parsed into a known envelope."""


class InvalidState(ValidationError):
    """The target document is not in a state that permits the operation."""


class AlreadyReviewed(InvalidState):
    """An admin decision has already been recorded for a return request."""


class NoEligibleItems(ValidationError):
    """A payout run found no unclaimed, settled items for the seller."""


class LimitExceeded(ValidationError):
    """A usage or amount limit would be exceeded."""
