class CyberGuardError(Exception):
    """Base class for errors raised by the portal"""
    error_code = "SERVER_ERROR"
    status_code = 500


class DatabaseConnectionError(CyberGuardError, ConnectionError):
    """The database could not be reached after the bounded number of attempts"""
    error_code = "DATABASE_UNAVAILABLE"

    def __init__(self, attempts: int, cause: Exception):
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Database connection failed: {cause} (After {attempts} attempts)")


class QueryError(CyberGuardError):
    """A single statement failed. `sql` is kept for logs, not for the message."""
    error_code = "QUERY_FAILED"

    def __init__(self, sql: str, cause: Exception):
        self.sql = sql
        self.cause = cause
        super().__init__(f"Database query failed: {cause}")


class ValidationError(CyberGuardError):
    error_code = "VALIDATION_ERROR"
    status_code = 400


class PersistenceError(CyberGuardError):
    """A required insert inside the submission transaction produced no row"""
    error_code = "PERSISTENCE_FAILED"
    status_code = 400


class SubmissionError(CyberGuardError):
    error_code = "SUBMISSION_FAILED"
    status_code = 400

    def __init__(self, message: str, cause: Exception = None):
        self.cause = cause
        super().__init__(message)


class RateLimited(CyberGuardError):
    error_code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, client_ip: str, recent_count: int):
        self.client_ip = client_ip
        self.recent_count = recent_count
        super().__init__("Too many submissions. Please wait before submitting again.")
