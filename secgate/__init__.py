"""SecGate - DevSecOps security gates for CI pipelines.

SecGate wraps the external scanners of a container delivery pipeline
(Trivy, Snyk, Checkmarx, Conftest) and turns their JSON output into
threshold-based pass/fail gates, GitLab security reports, SARIF, HTML
summaries and ``.env`` result files for downstream jobs.

The package provides:
- One CLI subcommand per pipeline stage
- A builtin Kubernetes policy evaluator (default deny, allow iff no violations)
- GitOps promotion, rollback and preview environment helpers
- Optional SQLite history of gate runs

Examples
--------
Run the container scan stage:
    $ secgate trivy

Validate manifests with the builtin policies:
    $ secgate policy --manifests-dir k8s

See Also
--------
secgate.cli.cli : Command-line interface
secgate.application : Pipeline stages
secgate.core : Models, gates, policies and exceptions
"""
from __future__ import annotations

__version__ = "1.0.0"
__author__ = "Anush Krishna"
__license__ = "MIT"

__all__ = ["__version__", "__author__", "__license__"]
