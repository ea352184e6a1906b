from typing import Any

from .filters import DEFAULT_BACKLINK


class VirtualAttributes:
    """
    Whether the server maintains membership back-links for us, and under
    which attribute.

    Args:
        enabled: ``True`` if back-link attributes should be used

    Keyword Args:
        attributes: overrides; ``virtual_membership`` names the back-link
            attribute (default ``memberOf``)

    """

    def __init__(self, enabled: bool, attributes: dict[str, Any] | None = None) -> None:
        self.enabled = enabled
        self.attributes: dict[str, Any] = dict(attributes or {})

    @classmethod
    def from_config(cls, value: bool | dict[str, Any] | None) -> "VirtualAttributes":
        """
        Build from the ``virtual_attributes`` setting, which is either a
        bool or a dict of overrides (which implies enabled).
        """
        if isinstance(value, dict):
            return cls(True, value)  # noqa: FBT003
        return cls(bool(value))

    @property
    def virtual_membership(self) -> str:
        return self.attributes.get("virtual_membership", DEFAULT_BACKLINK)

    def __repr__(self) -> str:
        return (
            f"<VirtualAttributes: enabled={self.enabled} "
            f"virtual_membership={self.virtual_membership}>"
        )
