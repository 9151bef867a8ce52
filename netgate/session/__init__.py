"""Session identity and deployment loading."""

from .session_identity import (
    UNDEPLOYED_GAME_ID,
    DeploymentInfo,
    NetworkMode,
    SessionIdentity,
    load_deployment_info,
)

__all__ = ["UNDEPLOYED_GAME_ID", "DeploymentInfo", "NetworkMode", "SessionIdentity", "load_deployment_info"]
