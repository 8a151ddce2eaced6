"""
Typed Exception Hierarchy for the Manufacturing Dispatch Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (an HTTP adapter, a CLI, a work queue) must map kernel failures to
responses without parsing message strings.  Every exception therefore has:
  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. A CATEGORY, HTTP_STATUS and RETRYABLE flag used by adapters
  4. Structured DATA stored as attributes (not just a message string)

Example:
    try:
        workflow.create_dispatch(order_id, manifest, meta)
    except OrderNotFoundError as e:
        return {"error": e.code, "order_id": e.order_id}, e.http_status
    except MfgKernelError as e:
        if e.retryable:
            schedule_retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    MfgKernelError (base)
    |
    +-- NotFoundError                      (404)
    |   +-- OrderNotFoundError
    |   +-- OrderItemNotFoundError
    |   +-- ProductNotFoundError
    |   +-- RawMaterialNotFoundError
    |   +-- DispatchNotFoundError
    |   +-- ProductionBatchNotFoundError
    |   +-- StockAlertNotFoundError
    |
    +-- InvalidInputError                  (400)
    |   +-- MissingFieldError
    |   +-- InvalidManifestError
    |   +-- InvalidQuantityError
    |   +-- InvalidStatusError
    |   +-- InvalidStatusTransitionError
    |
    +-- ConflictError                      (409)
    |   +-- DuplicateIdentifierError       (retryable)
    |   +-- DispatchAlreadyExistsError
    |   +-- OrderCancelledError
    |   +-- OrderItemsLockedError
    |   +-- ProductMatchError
    |   |   +-- NoProductMatchError
    |   |   +-- AmbiguousProductMatchError
    |   +-- InsufficientRawMaterialError
    |
    +-- InternalError                      (500)
        +-- TransactionTimeoutError        (retryable)

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Categories are classes, not flags: adapters can ``except ConflictError``
   to map a whole family to one response shape.
2. ``retryable`` is a class attribute.  Conflicts default to retryable
   (DuplicateIdentifierError: re-issuing allocates a fresh identifier);
   conflicts about a settled state (cancelled order, existing dispatch,
   product match) are not.  TransactionTimeoutError is retryable too.
3. Product match failures are Conflicts, not NotFound: the product may
   exist, the attribute tuple simply does not identify exactly one.
"""


class MfgKernelError(Exception):
    """
    Base exception for all kernel errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "MFG_KERNEL_ERROR"
    category: str = "internal"
    http_status: int = 500
    retryable: bool = False


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(MfgKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"
    category: str = "not_found"
    http_status: int = 404


class OrderNotFoundError(NotFoundError):
    """Order with the given identifier was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class OrderItemNotFoundError(NotFoundError):
    """Order line item was not found."""

    code: str = "ORDER_ITEM_NOT_FOUND"

    def __init__(self, line_item_id: str, order_id: str | None = None):
        self.line_item_id = line_item_id
        self.order_id = order_id
        msg = f"Order item not found: {line_item_id}"
        if order_id:
            msg = f"{msg} (order {order_id})"
        super().__init__(msg)


class ProductNotFoundError(NotFoundError):
    """Finished product was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class RawMaterialNotFoundError(NotFoundError):
    """Raw material was not found."""

    code: str = "RAW_MATERIAL_NOT_FOUND"

    def __init__(self, material_id: str):
        self.material_id = material_id
        super().__init__(f"Raw material not found: {material_id}")


class DispatchNotFoundError(NotFoundError):
    """Dispatch was not found."""

    code: str = "DISPATCH_NOT_FOUND"

    def __init__(self, dispatch_id: str):
        self.dispatch_id = dispatch_id
        super().__init__(f"Dispatch not found: {dispatch_id}")


class ProductionBatchNotFoundError(NotFoundError):
    """Production batch was not found."""

    code: str = "PRODUCTION_BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Production batch not found: {batch_id}")


class StockAlertNotFoundError(NotFoundError):
    """Stock alert was not found."""

    code: str = "STOCK_ALERT_NOT_FOUND"

    def __init__(self, alert_id: str):
        self.alert_id = alert_id
        super().__init__(f"Stock alert not found: {alert_id}")


# =============================================================================
# Invalid input
# =============================================================================


class InvalidInputError(MfgKernelError):
    """Base exception for rejected input."""

    code: str = "INVALID_INPUT"
    category: str = "invalid_input"
    http_status: int = 400


class MissingFieldError(InvalidInputError):
    """A required field was not supplied."""

    code: str = "MISSING_FIELD"

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Missing required field: {field_name}")


class InvalidManifestError(InvalidInputError):
    """
    Dispatch manifest is empty or references line items of another order.
    """

    code: str = "INVALID_MANIFEST"

    def __init__(
        self,
        order_id: str,
        reason: str,
        line_item_ids: list[str] | None = None,
    ):
        self.order_id = order_id
        self.reason = reason
        self.line_item_ids = line_item_ids or []
        super().__init__(f"Invalid manifest for order {order_id}: {reason}")


class InvalidQuantityError(InvalidInputError):
    """Quantity, rate or stock amount is negative or malformed."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field_name: str, value: object):
        self.field_name = field_name
        self.value = value
        super().__init__(f"Invalid value for {field_name}: {value!r}")


class InvalidStatusError(InvalidInputError):
    """Status value is not a member of the target enum."""

    code: str = "INVALID_STATUS"

    def __init__(self, entity_type: str, status: str, allowed: list[str]):
        self.entity_type = entity_type
        self.status = status
        self.allowed = allowed
        super().__init__(
            f"Invalid {entity_type} status {status!r}; "
            f"expected one of {', '.join(allowed)}"
        )


class InvalidStatusTransitionError(InvalidInputError):
    """Status change is not permitted by the entity's state machine."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        from_status: str,
        to_status: str,
        reason: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = (
            f"Cannot move {entity_type} {entity_id} "
            f"from {from_status} to {to_status}"
        )
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


# =============================================================================
# Conflict
# =============================================================================


class ConflictError(MfgKernelError):
    """
    Base exception for state conflicts.

    Retryable by default: re-issuing the call re-reads current state.
    Subclasses describing a settled state opt out.
    """

    code: str = "CONFLICT"
    category: str = "conflict"
    http_status: int = 409
    retryable: bool = True


class DuplicateIdentifierError(ConflictError):
    """
    Insert lost a race on a unique identifier column.

    Retryable: re-issuing the call allocates a new identifier.
    """

    code: str = "DUPLICATE_IDENTIFIER"
    retryable: bool = True

    def __init__(self, entity_type: str, identifier: str):
        self.entity_type = entity_type
        self.identifier = identifier
        super().__init__(
            f"Duplicate {entity_type} identifier: {identifier}"
        )


class DispatchAlreadyExistsError(ConflictError):
    """Order already has a dispatch and the cardinality is SINGLE."""

    code: str = "DISPATCH_ALREADY_EXISTS"
    retryable: bool = False

    def __init__(self, order_id: str, dispatch_id: str):
        self.order_id = order_id
        self.dispatch_id = dispatch_id
        super().__init__(
            f"Order {order_id} already has dispatch {dispatch_id}"
        )


class OrderCancelledError(ConflictError):
    """Operation not allowed on a cancelled order."""

    code: str = "ORDER_CANCELLED"
    retryable: bool = False

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} is cancelled")


class OrderItemsLockedError(ConflictError):
    """Line items cannot be replaced once the order has been dispatched."""

    code: str = "ORDER_ITEMS_LOCKED"
    retryable: bool = False

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(
            f"Items of order {order_id} cannot change after dispatch"
        )


class ProductMatchError(ConflictError):
    """Base for descriptive-attribute product resolution failures."""

    code: str = "PRODUCT_MATCH_ERROR"
    retryable: bool = False

    def __init__(self, match_key: dict, message: str):
        self.match_key = match_key
        super().__init__(message)


class NoProductMatchError(ProductMatchError):
    """No product carries the requested attribute tuple."""

    code: str = "NO_PRODUCT_MATCH"

    def __init__(self, match_key: dict):
        super().__init__(match_key, f"No product matches {match_key}")


class AmbiguousProductMatchError(ProductMatchError):
    """More than one product carries the requested attribute tuple."""

    code: str = "AMBIGUOUS_PRODUCT_MATCH"

    def __init__(self, match_key: dict, candidate_ids: list[str]):
        self.candidate_ids = candidate_ids
        super().__init__(
            match_key,
            f"{len(candidate_ids)} products match {match_key}: "
            f"{', '.join(candidate_ids)}",
        )


class InsufficientRawMaterialError(ConflictError):
    """Bill of materials cannot be satisfied from current raw stock."""

    code: str = "INSUFFICIENT_RAW_MATERIAL"
    retryable: bool = False

    def __init__(self, material_id: str, required: int, available: int):
        self.material_id = material_id
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient stock for {material_id}: "
            f"required {required}, available {available}"
        )


# =============================================================================
# Internal
# =============================================================================


class InternalError(MfgKernelError):
    """Base exception for unexpected store failures."""

    code: str = "INTERNAL_ERROR"


class TransactionTimeoutError(InternalError):
    """
    Transaction exceeded its lock or statement timeout.

    The transaction was rolled back; retrying is safe.
    """

    code: str = "TRANSACTION_TIMEOUT"
    http_status: int = 503
    retryable: bool = True

    def __init__(self, operation: str, timeout_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"{operation} exceeded transaction timeout of {timeout_seconds}s"
        )
