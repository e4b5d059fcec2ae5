from typing import Any, List, Optional


class OrderServiceError(Exception):
    """
    Base class for every error the order core raises on purpose.
    Carries what the HTTP layer needs to render a response (see exception_handlers).
    """
    status_code = 500
    error_code = "internal_error"

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


# ----------- Not Found -----------

class OrderNotFoundError(OrderServiceError):
    status_code = 404
    error_code = "order_not_found"

    def __init__(self, identifier: Any):
        label = "ID" if isinstance(identifier, int) else "UUID"
        super().__init__(f"Order with {label} {identifier} not found")
        self.identifier = identifier


class IndexDocumentNotFoundError(OrderServiceError):
    """Logical absence in the index store (zero hits), distinct from transport errors."""
    status_code = 404
    error_code = "document_not_found"

    def __init__(self, resource_id: str, resource_type: str = "Order"):
        super().__init__(
            f"{resource_type} with id '{resource_id}' not found",
            details={"resource_id": resource_id, "resource_type": resource_type},
        )


# ----------- State machine -----------

class OrderNotModifiableError(OrderServiceError):
    status_code = 400
    error_code = "order_not_modifiable"

    def __init__(self, status: Any):
        status_value = getattr(status, "value", status)
        super().__init__(
            f"Order with status {status_value} cannot be modified",
            details={"current_status": status_value},
        )
        self.status = status_value


# ----------- Validation -----------

class ValidationFailedError(OrderServiceError):
    status_code = 400
    error_code = "validation_failed"

    def __init__(self, reasons: List[str], message: str = "Validation failed"):
        super().__init__(message, details=list(reasons))
        self.reasons = list(reasons)


class InvalidSearchParametersError(ValidationFailedError):
    error_code = "invalid_search_parameters"

    def __init__(self, reason: str):
        super().__init__([reason], message="Invalid search parameters")


class InvalidDateRangeError(InvalidSearchParametersError):
    error_code = "invalid_date_range"


class InvalidItemsQueryError(InvalidSearchParametersError):
    error_code = "invalid_items_query"


# ----------- Transactional store -----------

class TransactionFailedError(OrderServiceError):
    """
    Wraps the underlying store exception. The cause is kept for logs only;
    it is never part of the message shown to clients.
    """
    error_code = "transaction_failed"
    operation = "process"

    def __init__(self, cause: Optional[BaseException] = None):
        super().__init__(f"Failed to {self.operation} order")
        self.cause = cause


class OrderCreationFailedError(TransactionFailedError):
    error_code = "order_creation_failed"
    operation = "create"


class OrderUpdateFailedError(TransactionFailedError):
    error_code = "order_update_failed"
    operation = "update"


class OrderOperationFailedError(OrderServiceError):
    """Client-safe translation of a TransactionFailedError, raised by the orchestrator."""
    status_code = 400
    error_code = "order_operation_failed"


# ----------- Index store -----------

class IndexPropagationError(OrderServiceError):
    """An index/update/delete call did not reach the index store."""
    error_code = "index_propagation_failed"

    def __init__(self, operation: str, order_uuid: str, cause: Optional[BaseException] = None):
        super().__init__(f"Failed to {operation} order {order_uuid} in Elasticsearch: {cause}")
        self.operation = operation
        self.order_uuid = order_uuid
        self.cause = cause


class IndexSearchError(OrderServiceError):
    error_code = "index_search_failed"

    def __init__(self, search_type: str, cause: Optional[BaseException] = None):
        super().__init__(f"Failed to search for {search_type} in Elasticsearch: {cause}")
        self.cause = cause


# ----------- Search layer -----------

class SearchServiceUnavailableError(OrderServiceError):
    status_code = 503
    error_code = "search_service_unavailable"

    def __init__(self, reason: str = ""):
        super().__init__("Search service is currently unavailable", details=reason or None)


class SearchExecutionError(OrderServiceError):
    status_code = 500
    error_code = "search_execution_failed"

    def __init__(self, reason: str = ""):
        super().__init__("Failed to execute search", details=reason or None)


# ----------- Message bus -----------

class EventPublishError(OrderServiceError):
    error_code = "event_publish_failed"
