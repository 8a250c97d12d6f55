"""
Aviatrix controller version lookup.

The report optionally records the version of the controller the
workspace's provider talks to. The lookup is best-effort: every
failure surfaces as ControllerError, which callers turn into a warning.
"""

import logging
import os
import re
import warnings
from dataclasses import dataclass
from typing import Optional

import requests

from .core.exceptions import ControllerError

logger = logging.getLogger("tfbench.controller")

CONTROLLER_IP_ENV = "AVIATRIX_CONTROLLER_IP"
USERNAME_ENV = "AVIATRIX_USERNAME"
PASSWORD_ENV = "AVIATRIX_PASSWORD"
CONTROLLER_ENV_VARS = (CONTROLLER_IP_ENV, USERNAME_ENV, PASSWORD_ENV)

DEFAULT_TIMEOUT = 30

_VERSION_RE = re.compile(r"(?:^|-)(?P<major>\d+)\.(?P<minor>\d+)(?:\.(?P<build>\d+))?")


@dataclass(frozen=True)
class ControllerVersion:
    """Controller release, e.g. 6.5.2613."""
    major: int
    minor: int
    build: int = 0

    def __str__(self) -> str:
        return f"v{self.major}.{self.minor}.{self.build}"

    @classmethod
    def parse(cls, text: str) -> "ControllerVersion":
        """Parse "UserConnect-6.5.2613" or "6.5.2613".

        Raises:
            ControllerError: text holds no version
        """
        match = _VERSION_RE.search(text.strip())
        if match is None:
            raise ControllerError(f"unexpected version string {text!r}")
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            build=int(match.group("build") or 0),
        )


class AviatrixClient:
    """Minimal client for the controller's form-encoded v1 API.

    Controllers usually serve self-signed certificates, so TLS
    verification is off.
    """

    def __init__(
        self,
        controller_ip: str,
        username: str,
        password: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.url = f"https://{controller_ip}/v1/api"
        self.username = username
        self.password = password
        self.timeout = timeout
        self.session = session or requests.Session()
        self.cid: Optional[str] = None

    def _call(self, action: str, **params) -> dict:
        data = {"action": action, **params}
        try:
            with warnings.catch_warnings():
                warnings.filterwarnings("ignore", message="Unverified HTTPS request")
                response = self.session.post(self.url, data=data, timeout=self.timeout, verify=False)
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.RequestException as e:
            raise ControllerError(f"{action} request failed: {e}") from e
        except ValueError as e:
            raise ControllerError(f"{action} returned invalid JSON: {e}") from e

        if not isinstance(body, dict):
            raise ControllerError(f"{action} returned an unexpected response")
        if body.get("return") is False:
            raise ControllerError(f"{action} was rejected: {body.get('reason', 'no reason given')}")
        return body

    def login(self) -> str:
        body = self._call("login", username=self.username, password=self.password)
        cid = body.get("CID")
        if not cid:
            raise ControllerError("login response carried no CID")
        self.cid = cid
        logger.debug(f"Logged in to controller at {self.url}")
        return cid

    def current_version(self) -> ControllerVersion:
        if self.cid is None:
            self.login()
        body = self._call("list_version_info", CID=self.cid)
        results = body.get("results") or {}
        version = results.get("current_version") if isinstance(results, dict) else None
        if not version:
            raise ControllerError("list_version_info response carried no current_version")
        return ControllerVersion.parse(str(version))


def missing_controller_env(environ: Optional[dict] = None) -> list[str]:
    """Names of the controller variables that are unset or empty."""
    environ = os.environ if environ is None else environ
    return [name for name in CONTROLLER_ENV_VARS if not environ.get(name)]


def controller_version_from_env(environ: Optional[dict] = None) -> ControllerVersion:
    """Look up the controller version with credentials from the environment.

    Raises:
        ControllerError: variables missing or lookup failed
    """
    environ = os.environ if environ is None else environ
    missing = missing_controller_env(environ)
    if missing:
        raise ControllerError(f"environment variable(s) {', '.join(missing)} not set")
    client = AviatrixClient(
        environ[CONTROLLER_IP_ENV],
        environ[USERNAME_ENV],
        environ[PASSWORD_ENV],
    )
    return client.current_version()
