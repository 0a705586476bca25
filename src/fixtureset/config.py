"""Engine configuration."""

import os
from dataclasses import dataclass

from fixtureset.domain import CONTEXT

__all__ = ["EngineConfig"]

_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class EngineConfig:
    """Settings shared by the registry, the engine and the scope lifecycle.

    Attributes:
        context_name: Reserved dependency name that injects the ambient test
            context. No fixture may be registered under this name.
        strict_teardown: If True, failing teardown callbacks raise when a module
            or the session finishes. If False they are only logged.
    """

    context_name: str = CONTEXT
    strict_teardown: bool = True

    @classmethod
    def from_environment(cls) -> "EngineConfig":
        """Create an EngineConfig from FIXTURESET_* environment variables."""
        return cls(
            context_name=os.environ.get("FIXTURESET_CONTEXT_NAME", CONTEXT),
            strict_teardown=os.environ.get("FIXTURESET_STRICT_TEARDOWN", "1").strip().lower()
            not in _FALSY,
        )


DEFAULT_CONFIG = EngineConfig()
