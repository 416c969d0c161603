# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Checkmarx CxSAST REST API client.

Implements the subset of ``/cxrestapi`` used by the SAST stage: token
login, project lookup/creation, source upload, scan start, status polling
and result retrieval. Every call checks for one exact HTTP status and raises
RemoteServiceError otherwise.

Classes
-------
CheckmarxClient : Authenticated REST client
ScanState : Terminal/non-terminal scan status names

Functions
---------
archive_source : Zip a source tree, skipping VCS, dependency and report dirs

Examples
--------
>>> client = CheckmarxClient("https://cx.example.com", "user", "secret")
>>> client.authenticate()
>>> project_id = client.get_or_create_project("payments-api")
"""
from __future__ import annotations

import fnmatch
import os
import time
import zipfile
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

import requests

from secgate.core.exceptions import RemoteServiceError
from secgate.core.logging_config import get_logger

logger = get_logger(__name__)

TOKEN_PATH = "/cxrestapi/auth/identity/connect/token"
# CxSAST's published default secret for the resource_owner_client grant
DEFAULT_CLIENT_SECRET = "014DF517-39D1-4453-B7B3-9930C563627C"

DEFAULT_ARCHIVE_EXCLUDES = (
    ".git",
    "node_modules",
    "vendor",
    "test",
    "tests",
    "coverage",
    "reports",
    "*.min.js",
    "*.log",
)


class ScanState:
    FINISHED = "Finished"
    FAILED = {"Failed", "Canceled"}


class CheckmarxClient:
    """Thin wrapper over a requests Session.

    Parameters
    ----------
    base_url : str
        Server root, e.g. ``https://checkmarx.example.com``.
    username, password : str
        Credentials for the password grant.
    timeout : int
        Per-request timeout in seconds.
    verify : bool
        TLS certificate verification.
    session : requests.Session, optional
        Injected session (tests pass a mock).
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        *,
        client_secret: str = DEFAULT_CLIENT_SECRET,
        timeout: int = 120,
        verify: bool = True,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.client_secret = client_secret
        self.timeout = timeout
        self.verify = verify
        self.session = session or requests.Session()
        self.token: Optional[str] = None

    # ----- Helpers ----------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _headers(self, **extra: str) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        expected: int,
        operation: str,
        **kwargs: Any,
    ) -> requests.Response:
        kwargs.setdefault("headers", self._headers())
        try:
            response = self.session.request(
                method, self._url(path), timeout=self.timeout, verify=self.verify, **kwargs
            )
        except requests.RequestException as e:
            raise RemoteServiceError("checkmarx", operation, details={"error": str(e)}) from e
        if response.status_code != expected:
            raise RemoteServiceError("checkmarx", operation, status_code=response.status_code)
        return response

    @staticmethod
    def _json(response: requests.Response, operation: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise RemoteServiceError(
                "checkmarx", operation, status_code=response.status_code,
                details={"error": "response is not JSON"},
            ) from e

    # ----- API --------------------------------------------------------------------

    def authenticate(self) -> str:
        response = self._request(
            "POST",
            TOKEN_PATH,
            200,
            "Authentication",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            data={
                "username": self.username,
                "password": self.password,
                "grant_type": "password",
                "scope": "sast_rest_api",
                "client_id": "resource_owner_client",
                "client_secret": self.client_secret,
            },
        )
        token = (self._json(response, "Authentication") or {}).get("access_token")
        if not token:
            raise RemoteServiceError(
                "checkmarx", "Extracting access token", details={"error": "empty access_token"}
            )
        self.token = token
        logger.info("Successfully authenticated with Checkmarx")
        return token

    def find_project(self, name: str) -> Optional[int]:
        response = self._request("GET", "/cxrestapi/projects", 200, "Listing projects")
        for project in self._json(response, "Listing projects") or []:
            if isinstance(project, dict) and project.get("name") == name:
                return project.get("id")
        return None

    def create_project(self, name: str, team_id: int = 1) -> int:
        response = self._request(
            "POST",
            "/cxrestapi/projects",
            201,
            "Creating project",
            headers=self._headers(**{"Content-Type": "application/json"}),
            json={"name": name, "owningTeam": team_id, "isPublic": False},
        )
        project_id = (self._json(response, "Creating project") or {}).get("id")
        logger.info("Created new project with ID: %s", project_id)
        return project_id

    def get_or_create_project(self, name: str, team_id: int = 1) -> int:
        project_id = self.find_project(name)
        if project_id is None:
            logger.info("Project %s does not exist, creating new project", name)
            return self.create_project(name, team_id)
        logger.info("Found existing project with ID: %s", project_id)
        return project_id

    def upload_source(self, project_id: int, archive: Union[str, Path]) -> None:
        with open(archive, "rb") as fh:
            self._request(
                "POST",
                f"/cxrestapi/projects/{project_id}/sourceCode/attachments",
                204,
                "Uploading source code",
                files={"zippedSource": (Path(archive).name, fh, "application/zip")},
            )
        logger.info("Source code uploaded successfully")

    def start_scan(self, project_id: int, comment: str = "", incremental: bool = True) -> int:
        response = self._request(
            "POST",
            "/cxrestapi/sast/scans",
            201,
            "Starting scan",
            headers=self._headers(**{"Content-Type": "application/json"}),
            json={
                "projectId": project_id,
                "isIncremental": incremental,
                "isPublic": False,
                "forceScan": False,
                "comment": comment,
            },
        )
        scan_id = (self._json(response, "Starting scan") or {}).get("id")
        if scan_id is None:
            raise RemoteServiceError("checkmarx", "Extracting scan ID", details={"error": "missing id"})
        logger.info("SAST scan started with ID: %s", scan_id)
        return scan_id

    def scan_status(self, scan_id: int) -> str:
        response = self._request("GET", f"/cxrestapi/sast/scans/{scan_id}", 200, "Getting scan status")
        payload = self._json(response, "Getting scan status") or {}
        return str((payload.get("status") or {}).get("name") or "Unknown")

    def wait_for_scan(
        self,
        scan_id: int,
        poll_interval: int = 30,
        timeout: int = 7200,
        sleep: Callable[[float], None] = time.sleep,
    ) -> str:
        """
        Poll until the scan finishes.

        Raises
        ------
        RemoteServiceError
            If the scan ends Failed/Canceled or `timeout` seconds elapse.
        """
        waited = 0
        while waited < timeout:
            status = self.scan_status(scan_id)
            logger.info("Scan status: %s", status)
            if status == ScanState.FINISHED:
                return status
            if status in ScanState.FAILED:
                raise RemoteServiceError(
                    "checkmarx", f"Scan {scan_id} ended with status {status}",
                    details={"scan_status": status},
                )
            sleep(poll_interval)
            waited += poll_interval
        raise RemoteServiceError(
            "checkmarx", f"Scan {scan_id} did not finish within {timeout}s",
            details={"timeout": timeout},
        )

    def results_statistics(self, scan_id: int) -> Dict[str, Any]:
        response = self._request(
            "GET", f"/cxrestapi/sast/scans/{scan_id}/resultsStatistics", 200, "Getting scan statistics"
        )
        return self._json(response, "Getting scan statistics") or {}

    def results(self, scan_id: int) -> Optional[List[Dict[str, Any]]]:
        """Detailed results; None when the server does not answer 200."""
        try:
            response = self._request("GET", f"/cxrestapi/sast/scans/{scan_id}/results", 200, "Getting results")
        except RemoteServiceError as e:
            logger.warning("Failed to get detailed results: %s", e.message)
            return None
        payload = self._json(response, "Getting results")
        return payload if isinstance(payload, list) else []


def _excluded(rel_path: str, patterns: Sequence[str]) -> bool:
    parts = rel_path.split("/")
    for pattern in patterns:
        if any(fnmatch.fnmatch(part, pattern) for part in parts):
            return True
    return False


def archive_source(
    root: Union[str, Path],
    destination: Union[str, Path],
    excludes: Iterable[str] = DEFAULT_ARCHIVE_EXCLUDES,
) -> Path:
    """Zip `root` into `destination`, skipping paths matching `excludes`.

    The destination itself is never added even when it lives under `root`.
    """
    root = Path(root).resolve()
    destination = Path(destination).resolve()
    destination.parent.mkdir(parents=True, exist_ok=True)
    patterns = list(excludes)
    count = 0
    with zipfile.ZipFile(destination, "w", zipfile.ZIP_DEFLATED) as zf:
        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = Path(dirpath).relative_to(root).as_posix()
            dirnames[:] = [
                d for d in dirnames
                if not _excluded(d if rel_dir == "." else f"{rel_dir}/{d}", patterns)
            ]
            for filename in filenames:
                full = Path(dirpath) / filename
                if full.resolve() == destination:
                    continue
                rel = full.relative_to(root).as_posix()
                if _excluded(rel, patterns):
                    continue
                zf.write(full, rel)
                count += 1
    logger.debug("Archived %d file(s) from %s into %s", count, root, destination)
    return destination


__all__ = ["CheckmarxClient", "ScanState", "archive_source", "DEFAULT_ARCHIVE_EXCLUDES"]
