"""
Semblock Exceptions

Every error raised by the engine derives from SemblockError so callers can
catch the whole family at once.
"""

from typing import Optional


class SemblockError(Exception):
    """Base exception for semblock"""
    pass


class RuleParseError(SemblockError):
    """A rule string could not be turned into a Rule"""
    pass


class InvalidFormatError(RuleParseError):
    """Rule part matches none of the known rule grammars"""
    pass


class InvalidDomainError(RuleParseError):
    """Domain prefix contains a malformed token"""

    def __init__(self, domain: str):
        self.domain = domain
        super().__init__(f'Invalid domain format: "{domain}"')


class SettingsValidationError(SemblockError):
    """Settings object failed validation"""
    pass


class ProviderError(SemblockError):
    """Base for backend/provider failures"""
    pass


class UnknownProviderError(ProviderError):
    """Provider name outside the supported set"""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Unknown provider: {provider}")


class UnsupportedOperationError(ProviderError):
    """Adapter does not implement the requested capability"""

    def __init__(self, message: str, alternative: Optional[str] = None):
        self.alternative = alternative
        super().__init__(message)


class MissingCredentialError(ProviderError):
    """Adapter needs an API key that is not configured"""

    def __init__(self, provider: str, message: Optional[str] = None):
        self.provider = provider
        super().__init__(message or f"{provider} API key not configured")


class ProviderUnavailableError(ProviderError):
    """Provider bound to an analysis slot cannot be used right now"""

    def __init__(self, slot: str, provider: str, prerequisite: str):
        self.slot = slot
        self.provider = provider
        self.prerequisite = prerequisite
        super().__init__(prerequisite)


class ModelNotReadyError(ProviderError):
    """On-device model is not in the available state"""

    def __init__(self, state: str, message: str):
        self.state = state
        super().__init__(message)


class BackendError(ProviderError):
    """Backend answered with a non-success HTTP status"""

    def __init__(self, provider: str, status: int, body: str):
        self.provider = provider
        self.status = status
        self.body = body
        super().__init__(f"{provider} API error {status}: {body}")


class MalformedResponseError(ProviderError):
    """Backend response could not be parsed into the expected shape"""

    def __init__(self, message: str, content: Optional[str] = None):
        self.content = content
        super().__init__(message)


class ChannelClosedError(SemblockError):
    """Streaming channel was closed by the receiving side"""
    pass
