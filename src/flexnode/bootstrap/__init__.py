"""Step orchestration for node bootstrap and teardown."""

from .bootstrapper import Bootstrapper
from .components import ComponentStep, ServiceStep, component_installers, component_uninstallers
from .executor import ExecutionResult, StepOutcome, StepStatus, run_steps
from .platform import IdentityStrategy, is_azure_vm, select_identity_strategy
from .step import CompletionProbe, Step, StepPhase

__all__ = [
    # Orchestration
    "Bootstrapper",
    "ExecutionResult",
    "StepOutcome",
    "StepStatus",
    "run_steps",
    # Step contract
    "CompletionProbe",
    "Step",
    "StepPhase",
    # Collaborator steps
    "ComponentStep",
    "ServiceStep",
    "component_installers",
    "component_uninstallers",
    # Platform
    "IdentityStrategy",
    "is_azure_vm",
    "select_identity_strategy",
]
