from .invite_tracking import InviteTracker

__all__ = ["InviteTracker"]
