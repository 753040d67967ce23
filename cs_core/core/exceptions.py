"""
Domain exceptions raised by the customer-service engine
"""


class CSError(Exception):
    """Base class for customer-service engine errors"""


class SessionNotFoundError(CSError):
    def __init__(self, session_id):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class InvalidSessionStateError(CSError):
    def __init__(self, session_id, status, operation: str):
        self.session_id = session_id
        self.status = status
        self.operation = operation
        super().__init__(f"Cannot {operation} session {session_id} in status {getattr(status, 'value', status)}")


class SessionConflictError(CSError):
    """Another writer updated the session between our read and our write"""

    def __init__(self, session_id):
        self.session_id = session_id
        super().__init__(f"Session {session_id} was modified concurrently")


class ProviderError(CSError):
    """LLM provider call failed, timed out or returned an unusable body"""


class UsageTrackingError(CSError):
    """Billing ledger write failed"""


class CompanyNotFoundError(CSError):
    def __init__(self, company_id):
        self.company_id = company_id
        super().__init__(f"Company {company_id} not found")
