"""
Typed Exception Hierarchy for the OrderFlow Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Route handlers and operators must react to workflow failures precisely.
Parsing exception messages is fragile, so every failure the kernel can
produce has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Example - WRONG way to handle errors:
    try:
        engine.approve(do_id, actor_id)
    except Exception as e:
        if "department" in str(e):  # FRAGILE - message might change
            return 403

Example - RIGHT way (what this module enables):
    try:
        engine.approve(do_id, actor_id)
    except ForbiddenDepartmentError as e:
        api_response(status=403, code=e.code, location=e.current_location)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from OrderflowError:

    OrderflowError (base)
    |
    +-- ValidationError
    |
    +-- DuplicateError
    |   +-- DuplicateDoNumberError
    |   +-- DuplicatePartyNumberError
    |   +-- DuplicateUsernameError
    |   +-- DuplicateEmailError
    |
    +-- NotFoundError
    |   +-- DeliveryOrderNotFoundError
    |   +-- PartyNotFoundError
    |   +-- UserNotFoundError
    |
    +-- AuthorizationError
    |   +-- ForbiddenDepartmentError
    |   +-- UserInactiveError
    |
    +-- WorkflowError
    |   +-- AlreadyTerminalError
    |
    +-- StorageFailureError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- PartyReferencedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Bad dates, missing/blank fields
----------------|-----------------------------|-----------------------------------------
Duplicate       | DUPLICATE_DO_NUMBER         | DO number already exists
                | DUPLICATE_PARTY_NUMBER      | Party number already exists
                | DUPLICATE_USERNAME          | Username already taken
                | DUPLICATE_EMAIL             | Email already registered
----------------|-----------------------------|-----------------------------------------
Not found       | DELIVERY_ORDER_NOT_FOUND    | DO id / number does not resolve
                | PARTY_NOT_FOUND             | Party id / number does not resolve
                | USER_NOT_FOUND              | User id / username does not resolve
----------------|-----------------------------|-----------------------------------------
Authorization   | FORBIDDEN_DEPARTMENT        | Department may not act on the DO now
                | USER_INACTIVE               | Deactivated user attempted an action
----------------|-----------------------------|-----------------------------------------
Workflow        | ALREADY_TERMINAL            | DO is completed or rejected
----------------|-----------------------------|-----------------------------------------
Storage         | STORAGE_FAILURE             | Store unavailable (retryable)
                | OPTIMISTIC_LOCK_CONFLICT    | DO changed between read and write
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | History row or DO state edited directly
----------------|-----------------------------|-----------------------------------------
Party           | PARTY_REFERENCED            | Party deletion while DOs reference it

===============================================================================
HANDLING PATTERNS
===============================================================================

1. MAP CATEGORIES, NOT MESSAGES:

    except NotFoundError:          -> 404
    except AuthorizationError:     -> 403
    except (ValidationError, DuplicateError, WorkflowError): -> 400/409
    except StorageFailureError:    -> 503, client may retry

2. RETRY ONLY AFTER RE-READING:

    StorageFailureError is retryable, but the engine itself never retries.
    A caller retrying a write must re-issue the whole operation so the
    engine re-validates against the current DO state.

===============================================================================
"""


class OrderflowError(Exception):
    """
    Base exception for all OrderFlow kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "ORDERFLOW_ERROR"


# Validation


class ValidationError(OrderflowError):
    """Malformed input: bad dates, missing or blank fields."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Uniqueness


class DuplicateError(OrderflowError):
    """Base exception for uniqueness violations."""

    code: str = "DUPLICATE"


class DuplicateDoNumberError(DuplicateError):
    """A delivery order with this number already exists."""

    code: str = "DUPLICATE_DO_NUMBER"

    def __init__(self, do_number: str):
        self.do_number = do_number
        super().__init__(f"Delivery order number already exists: {do_number}")


class DuplicatePartyNumberError(DuplicateError):
    """A party with this number already exists."""

    code: str = "DUPLICATE_PARTY_NUMBER"

    def __init__(self, party_number: str):
        self.party_number = party_number
        super().__init__(f"Party number already exists: {party_number}")


class DuplicateUsernameError(DuplicateError):
    """Username is already taken."""

    code: str = "DUPLICATE_USERNAME"

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Username already exists: {username}")


class DuplicateEmailError(DuplicateError):
    """Email is already registered to another user."""

    code: str = "DUPLICATE_EMAIL"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email already registered: {email}")


# Lookup


class NotFoundError(OrderflowError):
    """Base exception for identifiers that do not resolve."""

    code: str = "NOT_FOUND"


class DeliveryOrderNotFoundError(NotFoundError):
    """Delivery order id or number does not resolve."""

    code: str = "DELIVERY_ORDER_NOT_FOUND"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Delivery order not found: {identifier}")


class PartyNotFoundError(NotFoundError):
    """Party id or number does not resolve."""

    code: str = "PARTY_NOT_FOUND"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Party not found: {identifier}")


class UserNotFoundError(NotFoundError):
    """User id or username does not resolve."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"User not found: {identifier}")


# Authorization


class AuthorizationError(OrderflowError):
    """Base exception for actors not permitted to perform an operation."""

    code: str = "AUTHORIZATION_ERROR"


class ForbiddenDepartmentError(AuthorizationError):
    """
    Actor's department cannot perform the requested transition.

    Raised when the department does not hold the DO, has no next step,
    or the DO's status does not admit the requested action.
    """

    code: str = "FORBIDDEN_DEPARTMENT"

    def __init__(
        self,
        department: str,
        action: str,
        reason: str,
        current_status: str | None = None,
        current_location: str | None = None,
    ):
        self.department = department
        self.action = action
        self.reason = reason
        self.current_status = current_status
        self.current_location = current_location
        super().__init__(
            f"Department {department} cannot {action}: {reason}"
        )


class UserInactiveError(AuthorizationError):
    """Deactivated user attempted an operation."""

    code: str = "USER_INACTIVE"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} is inactive")


# Workflow


class WorkflowError(OrderflowError):
    """Base exception for workflow state errors."""

    code: str = "WORKFLOW_ERROR"


class AlreadyTerminalError(WorkflowError):
    """Transition requested on a completed or rejected delivery order."""

    code: str = "ALREADY_TERMINAL"

    def __init__(self, do_number: str, status: str, action: str):
        self.do_number = do_number
        self.status = status
        self.action = action
        super().__init__(
            f"Delivery order {do_number} is {status}; cannot {action}"
        )


# Storage


class StorageFailureError(OrderflowError):
    """
    Underlying store unavailable or write conflict.

    Retryable by the caller. The engine itself never retries.
    """

    code: str = "STORAGE_FAILURE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage failure during {operation}: {reason}")


class OptimisticLockError(StorageFailureError):
    """Delivery order changed between read and conditional write."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            operation=f"update {entity_type}",
            reason=(
                f"{entity_type} {entity_id} was modified by another transaction"
            ),
        )


# Immutability


class ImmutabilityError(OrderflowError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Workflow history entries are append-only. Delivery order state columns
    are writable only through the workflow engine.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Referential integrity


class PartyReferencedError(OrderflowError):
    """Party cannot be deleted while delivery orders reference it."""

    code: str = "PARTY_REFERENCED"

    def __init__(self, party_id: str, reference_count: int):
        self.party_id = party_id
        self.reference_count = reference_count
        super().__init__(
            f"Party {party_id} is referenced by {reference_count} delivery order(s)"
        )
