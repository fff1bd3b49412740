"""
Custom exceptions for the Allocation Crawler Service
Organized by concern with detailed error information
"""

from typing import Any, Optional


class CrawlerServiceException(Exception):
    """Base exception for all service errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        self.recoverable = recoverable
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for boundary responses"""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# ===========================================
# Not Found
# ===========================================


class NotFoundError(CrawlerServiceException):
    """Base exception for absent entities"""

    status_code = 404

    def __init__(self, entity: str, identifier: str, code: str):
        super().__init__(
            message=f"{entity} not found: {identifier}",
            code=code,
            details={"entity": entity.lower(), "id": identifier},
            recoverable=False,
        )
        self.identifier = identifier


class BoardNotFoundError(NotFoundError):
    """Board does not exist"""

    def __init__(self, board: str):
        super().__init__("Board", board, "BOARD_NOT_FOUND")
        self.board = board


class JobNotFoundError(NotFoundError):
    """Job does not exist"""

    def __init__(self, board: str, job_id: str):
        super().__init__("Job", f"{board}:{job_id}", "JOB_NOT_FOUND")
        self.board = board
        self.job_id = job_id
        self.details.update({"board": board, "job_id": job_id})


class RunNotFoundError(NotFoundError):
    """Job run does not exist"""

    def __init__(self, run_id: str):
        super().__init__("Run", run_id, "RUN_NOT_FOUND")
        self.run_id = run_id


class UserNotFoundError(NotFoundError):
    """User does not exist"""

    def __init__(self, user_id: str):
        super().__init__("User", user_id, "USER_NOT_FOUND")
        self.user_id = user_id


# ===========================================
# Application Exceptions
# ===========================================


class ApplicationException(CrawlerServiceException):
    """Base exception for application run errors"""

    def __init__(
        self,
        message: str,
        board: Optional[str] = None,
        job_id: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.board = board
        self.job_id = job_id
        if board:
            self.details["board"] = board
        if job_id:
            self.details["job_id"] = job_id


class ApplyLockConflictError(ApplicationException):
    """Another run already holds the apply lock for this job"""

    status_code = 409

    def __init__(self, board: str, job_id: str, holder: Optional[str] = None):
        super().__init__(
            message="Job already has an active application in progress",
            board=board,
            job_id=job_id,
            code="APPLY_LOCK_CONFLICT",
            details={"lock_holder": holder},
            recoverable=True,
        )
        self.holder = holder


class InvalidJobStateError(ApplicationException):
    """Job status does not permit the requested operation"""

    status_code = 400

    def __init__(self, board: str, job_id: str, status: str):
        super().__init__(
            message=(
                f"Job is in '{status}' status - only discovered/queued jobs "
                "can be applied to"
            ),
            board=board,
            job_id=job_id,
            code="INVALID_JOB_STATE",
            details={"status": status},
            recoverable=False,
        )
        self.status = status


# ===========================================
# Input Exceptions
# ===========================================


class InvalidInputError(CrawlerServiceException):
    """Boundary input failed validation"""

    status_code = 422

    def __init__(self, message: str, errors: Optional[list[dict[str, Any]]] = None):
        super().__init__(
            message=message,
            code="INVALID_INPUT",
            details={"errors": errors or []},
            recoverable=False,
        )
        self.errors = errors or []


# ===========================================
# Store Exceptions
# ===========================================


class StoreFailureError(CrawlerServiceException):
    """Underlying key-value operation failed or timed out"""

    status_code = 503

    def __init__(self, operation: str, error: str, key: Optional[str] = None):
        super().__init__(
            message=f"Store operation '{operation}' failed: {error}",
            code="STORE_FAILURE",
            details={"operation": operation, "key": key, "error": error},
            recoverable=True,
        )
        self.operation = operation
        self.key = key


# ===========================================
# Configuration Exceptions
# ===========================================


class ConfigurationError(CrawlerServiceException):
    """Configuration error"""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            details={"config_key": config_key} if config_key else {},
            recoverable=False,
        )
