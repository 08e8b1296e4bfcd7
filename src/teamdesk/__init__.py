"""Teamdesk - project and task collaboration core."""

__all__ = ["CollaborationService", "PolicyConfig", "Settings", "open_workspace"]
__version__ = "0.1.0"


def __getattr__(name: str):
    """Lazy imports so the models can be used without opening storage drivers."""
    if name == "CollaborationService":
        from teamdesk.service import CollaborationService

        return CollaborationService
    if name == "PolicyConfig":
        from teamdesk.config import PolicyConfig

        return PolicyConfig
    if name == "Settings":
        from teamdesk.settings import Settings

        return Settings
    if name == "open_workspace":
        from teamdesk.main import open_workspace

        return open_workspace
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
