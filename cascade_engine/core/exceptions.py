class CascadeEngineError(Exception):
    """Base class for all cascade-engine domain exceptions.

    Every custom exception in this module inherits from here so that a
    single ``except CascadeEngineError`` clause can catch any domain
    error.
    """

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(detail)


class RuleIndexLoadError(CascadeEngineError):
    """Raised when the cascade rule index cannot be built from the store.

    Fatal at startup: the orchestrator must not run without rules.
    """

    def __init__(self, detail: str = "Failed to load cascade rules"):
        super().__init__(detail)


class InvalidConditionError(CascadeEngineError):
    """Raised when a rule's condition set contains an unsupported predicate
    or an operand of the wrong type."""

    def __init__(self, detail: str = "Invalid cascade condition"):
        super().__init__(detail)


class DuplicateTriggerError(CascadeEngineError):
    """Raised when a live cascade trigger already exists for the same
    (customer, triggered service) pair.

    Surfaces the ``uq_cascade_trigger_customer_service`` partial unique
    index so concurrent completions cannot both trigger the same service.
    """

    def __init__(self, detail: str = "Cascade already triggered for this service"):
        super().__init__(detail)


class ServiceNotFoundError(CascadeEngineError):
    """Raised when a requested service does not exist or is inactive."""

    def __init__(self, detail: str = "Service not found"):
        super().__init__(detail)


class CustomerNotFoundError(CascadeEngineError):
    """Raised when a requested customer does not exist."""

    def __init__(self, detail: str = "Customer not found"):
        super().__init__(detail)


class OrderNotFoundError(CascadeEngineError):
    """Raised when a requested service order does not exist."""

    def __init__(self, detail: str = "Service order not found"):
        super().__init__(detail)


class TriggerNotFoundError(CascadeEngineError):
    """Raised when a cascade trigger does not exist."""

    def __init__(self, detail: str = "Cascade trigger not found"):
        super().__init__(detail)


class InvalidTriggerStateError(CascadeEngineError):
    """Raised when an operation needs a pending trigger but it has
    already converted or been abandoned."""

    def __init__(self, detail: str = "Cascade trigger is no longer pending"):
        super().__init__(detail)


class EngineNotReadyError(CascadeEngineError):
    """Raised when the cascade engine is used before its rule index loaded."""

    def __init__(self, detail: str = "Cascade engine not initialised"):
        super().__init__(detail)
