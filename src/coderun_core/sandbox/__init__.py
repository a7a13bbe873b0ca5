"""Sandbox staging, command composition, provisioning and monitoring."""

from coderun_core.sandbox.commands import CommandPlan, expand_step, install_steps
from coderun_core.sandbox.monitor import ExecutionMonitor, ProgressTracker
from coderun_core.sandbox.provisioner import SandboxProvisioner
from coderun_core.sandbox.workspace import (
    ARTIFACTS_MOUNT,
    SOURCE_MOUNT,
    USER_ARTIFACTS_MOUNT,
    SandboxWorkspace,
    create_workspace,
    staged_workspace,
)

__all__ = [
    "ARTIFACTS_MOUNT",
    "CommandPlan",
    "ExecutionMonitor",
    "ProgressTracker",
    "SOURCE_MOUNT",
    "SandboxProvisioner",
    "SandboxWorkspace",
    "USER_ARTIFACTS_MOUNT",
    "create_workspace",
    "expand_step",
    "install_steps",
    "staged_workspace",
]
