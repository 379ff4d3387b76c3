from .store import ScopedStore, ArtifactState, ArtifactController, WriterConflict
from .resume import ResumeCoordinator, ResumeState, InvalidTransition
from .visibility import VisibilityController, OptimisticUpdate, UpdateState
from .http import ChatApiClient

__all__ = [
    "ScopedStore",
    "ArtifactState",
    "ArtifactController",
    "WriterConflict",
    "ResumeCoordinator",
    "ResumeState",
    "InvalidTransition",
    "VisibilityController",
    "OptimisticUpdate",
    "UpdateState",
    "ChatApiClient",
]
