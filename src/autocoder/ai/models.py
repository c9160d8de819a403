"""Model and per-model state types used by the fallback manager."""

from dataclasses import dataclass, asdict, replace
from enum import Enum
from typing import Any, Dict, Optional


class Provider(str, Enum):
    """Supported AI providers."""
    AWS = "aws"
    OPENROUTER = "openrouter"


@dataclass(frozen=True)
class Model:
    """A configured model. Identity is its provider-specific name."""
    name: str
    provider: Provider = Provider.OPENROUTER
    display_name: str = ""

    def __post_init__(self):
        if not self.display_name:
            object.__setattr__(self, 'display_name', self.name)

    @property
    def id(self) -> str:
        return self.name


class ModelStatus(str, Enum):
    """Availability of a model within a session."""
    AVAILABLE = "available"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


@dataclass(frozen=True)
class ModelState:
    """
    Availability record for one model.

    rate_limited_at is set exactly when status is RATE_LIMITED. Timestamps
    are seconds since the epoch.
    """
    status: ModelStatus = ModelStatus.AVAILABLE
    last_attempt: Optional[float] = None
    failures: int = 0
    rate_limited_at: Optional[float] = None

    def copy(self, **changes) -> 'ModelState':
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        return data


@dataclass
class FallbackOptions:
    """Tuning for the fallback manager."""
    retry_interval: int = 5  # check rate-limited models every N reported outcomes
    rate_limit_cooldown: int = 300000  # milliseconds
    max_retries: int = 3

    _ALIASES = {
        'retryInterval': 'retry_interval',
        'rateLimitCooldown': 'rate_limit_cooldown',
        'maxRetries': 'max_retries',
    }

    @classmethod
    def from_mapping(cls, options: Optional[Dict[str, Any]]) -> 'FallbackOptions':
        """Build options from a dict, accepting camelCase keys. Falsy values keep the default."""
        defaults = cls()
        values = {}
        for key, value in (options or {}).items():
            name = cls._ALIASES.get(key, key)
            if name in ('retry_interval', 'rate_limit_cooldown', 'max_retries') and value:
                values[name] = value
        return replace(defaults, **values)
