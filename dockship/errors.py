# dockship/errors.py
"""Exception hierarchy for deployment stages.

Every stage raises a subclass of DeploymentError. ``recoverable`` tells the
operator whether simply re-running the whole deployment is a safe way out.
"""
from typing import Optional


class DeploymentError(Exception):
    stage = "deploy"
    recoverable = False

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        recoverable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage
        if recoverable is not None:
            self.recoverable = recoverable

    def __str__(self) -> str:
        return self.message


class InputError(DeploymentError):
    stage = "input"


class PreconditionError(DeploymentError):
    stage = "preconditions"


class SourceError(DeploymentError):
    stage = "source"
    recoverable = True


class DescriptorError(DeploymentError):
    stage = "descriptor"


class ConnectivityError(DeploymentError):
    stage = "connectivity"
    recoverable = True


class RemoteCommandError(DeploymentError):
    """A remote command list exited non-zero."""

    stage = "remote"
    recoverable = True

    def __init__(self, message: str, result=None, stage: Optional[str] = None):
        super().__init__(message, stage=stage)
        self.result = result


class ProvisioningError(RemoteCommandError):
    stage = "provision"


class TransferError(RemoteCommandError):
    stage = "transfer"


class ProxyConfigError(RemoteCommandError):
    stage = "proxy"
