"""
Request context used to render plan templates.

The context is a semi-structured bag of caller-supplied values whose shape
depends on the requested operation, so values are read through typed
extraction helpers rather than ad-hoc isinstance checks at call sites.
"""
from typing import Any, Dict, Mapping, Optional

from atlas_broker.exceptions import InvalidContextValueError


class PlanContext(Dict[str, Any]):
    """Ordered key/value mapping passed to plan templates."""

    @classmethod
    def build(
        cls,
        instance_id: Optional[str] = None,
        parameters: Optional[Mapping[str, Any]] = None,
        context: Optional[Mapping[str, Any]] = None,
        injected: Optional[Mapping[str, Any]] = None,
    ) -> "PlanContext":
        """
        Merge the context sources in increasing priority.

        Args:
            instance_id: Synthesized default, exposed as ``instance_id``
            parameters: Caller-supplied request parameters
            context: Caller-supplied platform context
            injected: Process-level values such as credentials

        Returns:
            Merged context; later sources overwrite earlier keys
        """
        merged = cls()
        if instance_id is not None:
            merged["instance_id"] = instance_id
        for source in (parameters, context, injected):
            if source:
                merged.update(source)
        return merged

    def _typed(self, key: str, expected: type, label: str) -> Any:
        value = self.get(key)
        if value is None:
            return None
        if not isinstance(value, expected):
            raise InvalidContextValueError(
                f"{key} should be {label}, got {type(value).__name__}",
                details={"key": key},
            )
        return value

    def optional_bool(self, key: str) -> Optional[bool]:
        """Boolean value of ``key``, or None when absent."""
        return self._typed(key, bool, "a boolean")

    def optional_str(self, key: str) -> Optional[str]:
        """String value of ``key``, or None when absent."""
        return self._typed(key, str, "a string")

    def require_str(self, key: str) -> str:
        """String value of ``key``; absence is an error."""
        value = self.optional_str(key)
        if value is None:
            raise InvalidContextValueError(f"{key} is required", details={"key": key})
        return value
