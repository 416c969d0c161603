"""Docker CLI wrapper used by the image, build and push stages."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from secgate.core.logging_config import get_logger

from .base import ExternalTool

logger = get_logger(__name__)


class DockerTool(ExternalTool):
    @property
    def name(self) -> str:
        return "docker"

    def daemon_running(self) -> bool:
        return self.run(["info"], timeout_s=60).ok()

    def image_exists(self, image: str) -> bool:
        return self.run(["image", "inspect", image]).ok()

    def pull(self, image: str) -> bool:
        return self.run(["pull", image]).ok()

    def inspect(self, image: str) -> Dict[str, Any]:
        """Return ``{"id", "size", "created"}``; unreadable fields become defaults."""
        info: Dict[str, Any] = {"id": "unknown", "size": 0, "created": "unknown"}
        run = self.run(["image", "inspect", image])
        payload = run.parsed_json if run.ok() else None
        if isinstance(payload, list) and payload and isinstance(payload[0], dict):
            data = payload[0]
            info["id"] = data.get("Id") or "unknown"
            info["size"] = int(data.get("Size") or 0)
            info["created"] = data.get("Created") or "unknown"
        return info

    def build_cmd(
        self,
        image: str,
        dockerfile: Union[str, Path],
        context: Union[str, Path] = ".",
        labels: Optional[Dict[str, str]] = None,
        no_cache: bool = True,
        pull: bool = True,
    ) -> List[str]:
        args: List[str] = ["build", "--file", str(dockerfile), "--tag", image]
        for key, value in (labels or {}).items():
            args += ["--label", f"{key}={value}"]
        if no_cache:
            args.append("--no-cache")
        if pull:
            args.append("--pull")
        args.append(str(context))
        return args

    def tag(self, source: str, target: str) -> bool:
        return self.run(["image", "tag", source, target]).ok()

    def login(self, registry: str, username: str, password: str) -> None:
        """``docker login`` with the password on stdin."""
        self.run_checked(
            ["login", registry, "-u", username, "--password-stdin"],
            what="docker login",
            input_text=password,
        )

    def push(self, image: str) -> bool:
        return self.run(["push", image]).ok()

    def repo_digest(self, image: str) -> Optional[str]:
        """First ``RepoDigests`` entry of a pushed image, or None."""
        run = self.run(["image", "inspect", image])
        payload = run.parsed_json if run.ok() else None
        if isinstance(payload, list) and payload and isinstance(payload[0], dict):
            digests = payload[0].get("RepoDigests") or []
            if digests:
                return str(digests[0])
        return None

    def list_images(self, repository: str) -> List[str]:
        """``REPOSITORY:TAG`` for every local tag of `repository`."""
        run = self.run(["images", repository, "--format", "{{.Repository}}:{{.Tag}}"])
        if not run.ok():
            return []
        return [line.strip() for line in run.stdout.splitlines() if line.strip()]

    def remove(self, image: str) -> bool:
        return self.run(["rmi", image]).ok()

    def prune_builder(self) -> bool:
        return self.run(["builder", "prune", "-f"]).ok()

    def build(self, image: str, dockerfile: Union[str, Path], context: Union[str, Path] = ".", **kw: Any):
        return self.run_checked(self.build_cmd(image, dockerfile, context, **kw), what="docker build")


__all__ = ["DockerTool"]
