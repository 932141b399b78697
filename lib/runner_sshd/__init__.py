from .errors import NoAuthorizedKeys, SshdError, VerificationError
from .lifecycle import LifecycleState, Orchestrator, Phase
from .options import ServerOptions, build_options
from .platforms import PlatformProfile, select_profile

__all__ = [
    "LifecycleState",
    "NoAuthorizedKeys",
    "Orchestrator",
    "Phase",
    "PlatformProfile",
    "ServerOptions",
    "SshdError",
    "VerificationError",
    "build_options",
    "select_profile",
]
