class ThriveError(Exception):
    """Base class for errors surfaced to the user."""


class DataPreparationError(ThriveError):
    pass


class ModelNotFoundError(ThriveError):
    pass


class RecordNotFoundError(ThriveError):
    pass


class AuthError(ThriveError):
    pass


class LLMError(ThriveError):
    pass


class ValidationError(ThriveError):
    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
