from .base import ExternalTool
from .conftest import ConftestTool
from .docker import DockerTool
from .kube import ArgoCDTool, GitTool, KubectlTool
from .signing import CosignTool, SyftTool
from .snyk import SnykTool
from .trivy import TrivyTool

__all__ = [
    "ArgoCDTool",
    "ConftestTool",
    "CosignTool",
    "DockerTool",
    "ExternalTool",
    "GitTool",
    "KubectlTool",
    "SnykTool",
    "SyftTool",
    "TrivyTool",
]
