"""Supply-chain tooling for pushed images: cosign signatures and syft SBOMs.

Both binaries are optional; the push stage checks :meth:`is_installed`
before calling them.
"""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Union

from .base import ExternalTool


class CosignTool(ExternalTool):
    @property
    def name(self) -> str:
        return "cosign"

    def sign(self, image: str, key: Optional[str] = None) -> bool:
        """Key-based signing with `key`, keyless otherwise."""
        args: List[str] = ["sign", "--key", key, image] if key else ["sign", "--yes", image]
        return self.run(args).ok()

    def verify(self, image: str, public_key: Optional[str] = None) -> bool:
        args: List[str] = ["verify", "--key", public_key, image] if public_key else ["verify", image]
        return self.run(args).ok()

    def attest(self, image: str, predicate: Union[str, Path]) -> bool:
        return self.run(["attest", "--predicate", str(predicate), image]).ok()


class SyftTool(ExternalTool):
    @property
    def name(self) -> str:
        return "syft"

    def sbom(self, image: str) -> Optional[str]:
        """SBOM of `image` as JSON text, or None when syft fails."""
        run = self.run([image, "-o", "json"])
        return run.stdout if run.ok() and run.stdout.strip() else None


__all__ = ["CosignTool", "SyftTool"]
