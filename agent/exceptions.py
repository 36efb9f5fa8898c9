"""Custom exceptions for the GeoGebra tutor."""


class TutorError(Exception):
    """Base class for all tutor errors."""
    pass


class ConfigError(TutorError):
    """Raised when configuration is invalid or missing."""
    pass


class PromptTemplateError(TutorError):
    """Raised when a prompt template fails to render."""
    pass


class UnknownAgentError(TutorError):
    """Raised when a chat request names an agent profile that does not exist."""
    pass


class ProviderError(TutorError):
    """Raised when the model provider cannot be reached or fails the request."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ProviderAuthError(ProviderError):
    """Raised when the provider rejects the credentials (HTTP 401/403)."""
    pass


class ProviderRateLimitError(ProviderError):
    """Raised when the provider keeps rate limiting after all retries."""
    pass


class ProviderResponseError(ProviderError):
    """Raised when the provider returns a body that cannot be parsed."""
    pass


class ToolError(TutorError):
    """Base class for per-call tool failures."""
    pass


class UnknownToolError(ToolError):
    """Raised when a tool call names a tool absent from the catalog."""

    def __init__(self, tool_name: str, available: list[str]):
        super().__init__(
            f"Unknown tool '{tool_name}'. Available tools: {', '.join(available)}"
        )
        self.tool_name = tool_name


class ToolValidationError(ToolError):
    """Raised when tool parameters are missing or malformed."""
    pass


class EngineError(TutorError):
    """Base class for managed GeoGebra engine failures."""
    pass


class EngineConnectionError(EngineError):
    """Raised when the engine cannot be started or is not ready."""
    pass


class EngineCommandError(EngineError):
    """Raised when the engine fails while applying a command."""

    def __init__(self, message: str, command: str | None = None):
        super().__init__(message)
        self.command = command
