"""
errors.py — Error taxonomy and tagged decision outcomes.

Provider adapters and collaborators raise the exceptions below. The decision
engine never lets a provider exception escape: it converts each one into a
DecisionOutcome whose `kind` tells the caller what happened, so logging
policy is a branch on the tag rather than an inspection of exception fields.

    OK                — provider produced a parseable decision
    CONFIG_ERROR      — provider credential missing (routing signal, not a fault)
    PROVIDER_ERROR    — non-2xx, timeout, transport failure, empty reply
    QUIET_INELIGIBLE  — account not eligible for the provider (suppressed logging)
    PARSE_ERROR       — refusal or unparseable reply
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from models import Decision


# ─── Exceptions ───────────────────────────────────────────────────────────────


class EngineError(Exception):
    """Base exception for the trade-decision engine."""


class UnknownAgentError(EngineError):
    """Raised when an agent id has no registered profile."""


class ConfigurationError(EngineError):
    """Raised when a provider credential is absent."""


class ProviderError(EngineError):
    """Raised on HTTP/transport failure or an empty provider reply."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class QuietIneligibilityError(ProviderError):
    """Provider says the account is not eligible. Not a malfunction."""


class ParseError(EngineError):
    """Raised when a reply is a refusal or cannot be turned into a decision."""

    def __init__(self, message: str, raw_excerpt: str = "") -> None:
        super().__init__(message)
        self.raw_excerpt = raw_excerpt


class MarketDataError(EngineError):
    """Raised by upstream market/news fetchers."""


class StoreError(EngineError):
    """Base exception for trade store failures."""


class StoreValidationError(StoreError):
    """Raised when a record fails validation before being persisted."""


# ─── Tagged Outcome ───────────────────────────────────────────────────────────


class OutcomeKind(str, Enum):
    OK = "ok"
    CONFIG_ERROR = "config_error"
    PROVIDER_ERROR = "provider_error"
    QUIET_INELIGIBLE = "quiet_ineligible"
    PARSE_ERROR = "parse_error"


@dataclass
class DecisionOutcome:
    """Result of asking one provider for a decision."""
    kind: OutcomeKind
    provider: str
    decision: Optional["Decision"] = None
    error: str = ""
    raw_excerpt: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.OK

    @property
    def is_quiet(self) -> bool:
        """True when the failure should not be logged as an error."""
        return self.kind in (OutcomeKind.CONFIG_ERROR, OutcomeKind.QUIET_INELIGIBLE)

    @classmethod
    def success(cls, provider: str, decision: "Decision") -> "DecisionOutcome":
        return cls(kind=OutcomeKind.OK, provider=provider, decision=decision)

    @classmethod
    def from_exception(cls, provider: str, exc: Exception) -> "DecisionOutcome":
        """Map an adapter exception onto its outcome tag."""
        if isinstance(exc, ConfigurationError):
            kind = OutcomeKind.CONFIG_ERROR
        elif isinstance(exc, QuietIneligibilityError):
            kind = OutcomeKind.QUIET_INELIGIBLE
        elif isinstance(exc, ParseError):
            kind = OutcomeKind.PARSE_ERROR
        else:
            kind = OutcomeKind.PROVIDER_ERROR
        return cls(
            kind=kind,
            provider=provider,
            error=str(exc),
            raw_excerpt=getattr(exc, "raw_excerpt", ""),
        )
