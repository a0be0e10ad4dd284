"""Project provisioning, storage and command execution."""

from .executor import CommandExecutor, parse_command
from .files import DiskFileStore
from .generators import (
    BUILTIN_GENERATORS,
    GeneratorCatalog,
    GeneratorLoadError,
    GeneratorProfile,
    Invocation,
    UnknownFrameworkError,
)
from .models import FileNode, Framework, Project, ProjectConfig
from .provisioner import (
    CopyError,
    Provisioner,
    ProvisioningError,
    ProvisioningResult,
    ProvisioningState,
)
from .repository import (
    METADATA_FILE,
    InvalidProjectIdError,
    ProjectNotFoundError,
    ProjectRepository,
)
from .supervisor import CommandKind, CommandSupervisor, RunStatus
from .tree import build_file_tree

__all__ = [
    "BUILTIN_GENERATORS",
    "CommandExecutor",
    "CommandKind",
    "CommandSupervisor",
    "CopyError",
    "DiskFileStore",
    "FileNode",
    "Framework",
    "GeneratorCatalog",
    "GeneratorLoadError",
    "GeneratorProfile",
    "InvalidProjectIdError",
    "Invocation",
    "METADATA_FILE",
    "Project",
    "ProjectConfig",
    "ProjectNotFoundError",
    "ProjectRepository",
    "Provisioner",
    "ProvisioningError",
    "ProvisioningResult",
    "ProvisioningState",
    "RunStatus",
    "UnknownFrameworkError",
    "build_file_tree",
    "parse_command",
]
