"""Exception hierarchy for the cron job.

The reconciliation driver decides how far a failure reaches by its class:
``DataError`` and ``CalculationError`` abort one subscription or upgrade,
``ExternalCallError`` is logged after the state change has been persisted,
anything outside this hierarchy aborts the whole run.
"""


class OrderOpsError(Exception):
    """Base class for all OrderOps errors."""


class DataError(OrderOpsError):
    """A record is inconsistent or a related record is missing."""


class MissingRelationError(DataError):
    """A required related record (order, user, invoice item...) does not exist."""

    def __init__(self, entity: str, entity_id: object, relation: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.relation = relation
        super().__init__(f"{entity} {entity_id} has no {relation}")


class InvalidRecordError(DataError):
    """A stored value cannot be mapped onto the domain model."""


class CalculationError(OrderOpsError):
    """A billing calculation cannot be performed."""


class UnknownBillingCycleError(CalculationError):
    """The billing cycle has no fixed length (free, one-time) or is not recognised."""

    def __init__(self, cycle: object) -> None:
        self.cycle = cycle
        super().__init__(f"No cycle length for billing cycle {cycle!r}")


class ProrationError(CalculationError):
    """Proration inputs are out of range."""


class ExternalCallError(OrderOpsError):
    """A call to an external collaborator failed."""


class ProvisioningError(ExternalCallError):
    """The provisioning backend could not suspend, terminate or settle."""


class NotificationError(ExternalCallError):
    """A notification could not be delivered."""
