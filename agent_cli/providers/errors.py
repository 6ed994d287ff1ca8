"""Error taxonomy for CLI providers.

Two families live here:

- TypedError values. Every failed execution ends its message stream with
  exactly one of these. They are data, not exceptions, so a failing CLI never
  unwinds the caller's stack.
- ProviderError exceptions. Raised synchronously for configuration mistakes
  (unknown provider, unserved model, unsupported platform) that the caller
  has to fix before any execution can run.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Pattern, Sequence


class ErrorKind(str, Enum):
    """Closed set of failure kinds an execution can end with."""
    UNAVAILABLE = "unavailable"
    NOT_AUTHENTICATED = "not_authenticated"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_NETWORK = "transient_network"
    INVALID_QUERY = "invalid_query"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    PROTOCOL_VIOLATION = "protocol_violation"
    EXECUTION_FAILED = "execution_failed"


@dataclass(frozen=True)
class TypedError:
    """A classified execution failure.

    Attributes:
        kind: Taxonomy kind.
        message: Human-readable description.
        recoverable: True only when retrying the same query can succeed.
        suggestion: Remediation hint, meant to be shown verbatim.
        exit_code: Subprocess exit code, when the failure came from one.
        stderr: Tail of the subprocess stderr, when available.
    """
    kind: ErrorKind
    message: str
    recoverable: bool = False
    suggestion: Optional[str] = None
    exit_code: Optional[int] = None
    stderr: str = ""

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message} ({self.suggestion})"
        return self.message


# ==================== Exceptions ====================


class ProviderError(Exception):
    """Base exception for provider layer errors."""

    pass


class ConfigurationError(ProviderError):
    """The provider setup cannot serve the request."""

    pass


class ProviderNotFoundError(ConfigurationError):
    """Raised when no provider is registered under a name."""

    def __init__(self, name: str, available: Optional[List[str]] = None):
        self.name = name
        self.available = available or []
        message = f"Provider '{name}' is not registered."
        if self.available:
            message += f" Available: {', '.join(self.available)}"
        super().__init__(message)


class ModelNotServedError(ConfigurationError):
    """Raised when no registered provider claims a model id."""

    def __init__(self, model: str, available: Optional[List[str]] = None):
        self.model = model
        self.available = available or []
        message = f"No registered provider serves model '{model}'."
        if self.available:
            message += f" Registered providers: {', '.join(self.available)}"
        super().__init__(message)


class UnsupportedPlatformError(ConfigurationError):
    """Raised when a provider declares no usable strategy for the platform."""

    def __init__(self, provider: str, platform: str, detail: str = ""):
        self.provider = provider
        self.platform = platform
        message = f"Provider '{provider}' does not support platform '{platform}'."
        if detail:
            message += f" {detail}"
        super().__init__(message)


class InvalidQueryError(ProviderError):
    """Raised by argument builders when a query cannot be turned into a
    command line. Executions convert it into an INVALID_QUERY TypedError."""

    pass


# ==================== Mapping ====================


SUGGESTIONS = {
    ErrorKind.UNAVAILABLE: "install the CLI or set its path in the provider configuration",
    ErrorKind.NOT_AUTHENTICATED: "authenticate the CLI before retrying",
    ErrorKind.RATE_LIMITED: "wait for the rate limit window to reset, then retry",
    ErrorKind.TRANSIENT_NETWORK: "check network connectivity and retry",
    ErrorKind.INVALID_QUERY: "check the model name and options passed to the provider",
    ErrorKind.CANCELLED: "re-run the request if the result is still needed",
    ErrorKind.TIMEOUT: "increase the timeout or simplify the request",
    ErrorKind.PROTOCOL_VIOLATION: "upgrade the CLI to a version with a supported output format",
    ErrorKind.EXECUTION_FAILED: "inspect the CLI output for details",
}


@dataclass(frozen=True)
class ErrorRule:
    """Maps stderr content and/or an exit code to a taxonomy kind."""
    kind: ErrorKind
    patterns: Sequence[Pattern[str]] = ()
    exit_codes: Sequence[int] = ()
    recoverable: bool = False
    message: str = ""
    suggestion: Optional[str] = None

    def matches(self, lowered_stderr: str, exit_code: Optional[int]) -> bool:
        if exit_code is not None and exit_code in self.exit_codes:
            return True
        return any(p.search(lowered_stderr) for p in self.patterns)


def _patterns(*regexes: str) -> List[Pattern[str]]:
    return [re.compile(r) for r in regexes]


# Order is priority: authentication before rate limiting before the rest.
DEFAULT_RULES: List[ErrorRule] = [
    ErrorRule(
        kind=ErrorKind.NOT_AUTHENTICATED,
        patterns=_patterns(
            r"not (?:authenticated|logged in)",
            r"authentication (?:failed|required|error)",
            r"unauthori[sz]ed",
            r"\b401\b",
            r"invalid (?:api[ _-]?key|x-api-key|token|credentials)",
            r"please (?:run /?login|log ?in)",
            r"login required",
            r"oauth token (?:has )?expired",
        ),
        message="The CLI is not authenticated",
    ),
    ErrorRule(
        kind=ErrorKind.RATE_LIMITED,
        patterns=_patterns(
            r"rate[ _-]?limit",
            r"\b429\b",
            r"too many requests",
            r"quota (?:exceeded|exhausted)",
            r"usage limit",
            r"resource[ _]exhausted",
        ),
        recoverable=True,
        message="The CLI hit a rate limit",
    ),
    ErrorRule(
        kind=ErrorKind.TRANSIENT_NETWORK,
        patterns=_patterns(
            r"econnreset",
            r"econnrefused",
            r"etimedout",
            r"enotfound",
            r"eai_again",
            r"socket hang up",
            r"network (?:error|is unreachable)",
            r"connection (?:reset|refused|closed|error)",
            r"\b50[234]\b",
            r"service unavailable",
            r"temporarily unavailable",
            r"overloaded",
        ),
        recoverable=True,
        message="The CLI lost its connection to the service",
    ),
    ErrorRule(
        kind=ErrorKind.UNAVAILABLE,
        patterns=_patterns(r"command not found"),
        exit_codes=(127,),
        message="The CLI executable could not be started",
    ),
    ErrorRule(
        kind=ErrorKind.INVALID_QUERY,
        patterns=_patterns(
            r"unknown (?:option|argument|flag)",
            r"unrecognized (?:option|argument)",
            r"invalid (?:option|argument|value)",
            r"(?:invalid|unknown|unsupported) model",
            r"model (?:\S+ )?not found",
            r"(?m)^usage:",
        ),
        message="The CLI rejected the request arguments",
    ),
]


class ErrorMapper:
    """Classifies a failed subprocess into a TypedError.

    Rules are evaluated in order over the lower-cased stderr text and the
    first match wins. When nothing matches, the result is EXECUTION_FAILED
    with the exit code and a truncated stderr tail.

    Example:
        mapper = ErrorMapper()
        error = mapper.map("Error: 429 Too Many Requests", 1)
        assert error.kind is ErrorKind.RATE_LIMITED
    """

    def __init__(
        self,
        rules: Optional[Sequence[ErrorRule]] = None,
        stderr_excerpt_chars: int = 500,
    ):
        self._rules = list(rules) if rules is not None else list(DEFAULT_RULES)
        self._excerpt_chars = stderr_excerpt_chars

    @property
    def rules(self) -> List[ErrorRule]:
        return list(self._rules)

    def map(self, stderr_text: str, exit_code: Optional[int]) -> TypedError:
        """Classify stderr content and exit status into a typed error."""
        stderr_text = stderr_text or ""
        lowered = stderr_text.lower()
        excerpt = self._excerpt(stderr_text)

        for rule in self._rules:
            if rule.matches(lowered, exit_code):
                message = rule.message or f"CLI failed ({rule.kind.value})"
                if exit_code is not None:
                    message += f" (exit code {exit_code})"
                return TypedError(
                    kind=rule.kind,
                    message=message,
                    recoverable=rule.recoverable,
                    suggestion=rule.suggestion or SUGGESTIONS[rule.kind],
                    exit_code=exit_code,
                    stderr=excerpt,
                )

        if exit_code is not None and exit_code < 0:
            message = f"CLI was terminated by signal {-exit_code}"
        else:
            message = f"CLI exited with code {exit_code}"
        if excerpt:
            message += f": {excerpt}"
        return TypedError(
            kind=ErrorKind.EXECUTION_FAILED,
            message=message,
            recoverable=False,
            suggestion=SUGGESTIONS[ErrorKind.EXECUTION_FAILED],
            exit_code=exit_code,
            stderr=excerpt,
        )

    def _excerpt(self, stderr_text: str) -> str:
        text = stderr_text.strip()
        if len(text) <= self._excerpt_chars:
            return text
        return "..." + text[-self._excerpt_chars:]

    # ==================== Fixed-kind constructors ====================

    @staticmethod
    def unavailable(provider: str, reason: str = "") -> TypedError:
        message = f"Provider '{provider}' is unavailable: CLI not found"
        if reason:
            message += f" ({reason})"
        return TypedError(
            kind=ErrorKind.UNAVAILABLE,
            message=message,
            suggestion=SUGGESTIONS[ErrorKind.UNAVAILABLE],
        )

    @staticmethod
    def invalid_query(reason: str) -> TypedError:
        return TypedError(
            kind=ErrorKind.INVALID_QUERY,
            message=f"Invalid query: {reason}",
            suggestion=SUGGESTIONS[ErrorKind.INVALID_QUERY],
        )

    @staticmethod
    def cancelled() -> TypedError:
        return TypedError(
            kind=ErrorKind.CANCELLED,
            message="Execution was cancelled",
            suggestion=SUGGESTIONS[ErrorKind.CANCELLED],
        )

    @staticmethod
    def timeout(seconds: float) -> TypedError:
        return TypedError(
            kind=ErrorKind.TIMEOUT,
            message=f"Execution timed out after {seconds:g}s",
            suggestion=SUGGESTIONS[ErrorKind.TIMEOUT],
        )

    @staticmethod
    def protocol_violation(detail: str) -> TypedError:
        return TypedError(
            kind=ErrorKind.PROTOCOL_VIOLATION,
            message=f"CLI output could not be parsed: {detail}",
            suggestion=SUGGESTIONS[ErrorKind.PROTOCOL_VIOLATION],
        )

    @staticmethod
    def execution_failed(message: str) -> TypedError:
        return TypedError(
            kind=ErrorKind.EXECUTION_FAILED,
            message=message,
            suggestion=SUGGESTIONS[ErrorKind.EXECUTION_FAILED],
        )
