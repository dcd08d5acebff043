"""API dependencies."""

from fastapi import Request

from flagengine.core.flags.manager import FlagManager, get_flag_manager


def get_manager(request: Request) -> FlagManager:
    """Flag manager installed on the app, or the process-wide one."""
    manager = getattr(request.app.state, "flag_manager", None)
    if manager is None:
        manager = get_flag_manager()
    return manager
