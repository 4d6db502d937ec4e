from typing import Any


class CryptanalysisError(Exception):
    """Base exception for all cryptanalysis errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InvalidKeyError(CryptanalysisError):
    """Raised when an explicit key is not valid for the cipher."""

    def __init__(self, cipher_type: str, key: Any):
        super().__init__(
            f"Invalid key for {cipher_type}: {key!r}",
            {"cipher_type": cipher_type, "key": key},
        )


class LanguageModelError(CryptanalysisError):
    """Raised when the quadgram table cannot be loaded."""

    pass


class RerankError(CryptanalysisError):
    """Raised when the external re-ranking collaborator fails."""

    pass


class RerankContractError(RerankError):
    """Raised when a re-rank response does not refer to the submitted candidates."""

    pass
