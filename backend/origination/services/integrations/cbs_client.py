"""
Core Banking System (CBS) Client

JSON-over-HTTP client for the bank's customer API:

    POST /login     {username, password, DeviceID}  -> {userID, token, terminalId}
    POST /picture   {image: <base64>}               -> {pictureId}
    POST /customer  <customer payload>              -> {customerID, ...}

Every call after login carries the session token in the X-Fern-Token header.
"""
import base64
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from ... import config
from ...errors import CBSRequestError

logger = logging.getLogger(__name__)


@dataclass
class CBSCredentials:
    url: str
    username: str
    password: str
    device_id: str = ""

    @classmethod
    def from_env(cls) -> "CBSCredentials":
        return cls(
            url=config.CBS_URL,
            username=config.CBS_USERNAME,
            password=config.CBS_PASSWORD,
            device_id=config.CBS_DEVICE_ID,
        )


class CBSClient:

    def __init__(self, credentials: CBSCredentials, session: Optional[requests.Session] = None, timeout: float = None):
        self.credentials = credentials
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else config.CBS_TIMEOUT
        self.auth_info: Optional[Dict[str, Any]] = None

    def _post(self, endpoint: str, payload: Dict[str, Any], authenticated: bool = True) -> Dict[str, Any]:
        headers = {}
        if authenticated:
            if not self.auth_info:
                raise CBSRequestError("CBS session not initialized, login first")
            headers["X-Fern-Token"] = self.auth_info["token"]

        url = f"{self.credentials.url.rstrip('/')}{endpoint}"
        try:
            response = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            logger.error(f"CBS request {endpoint} failed: {e}")
            raise CBSRequestError(f"CBS request {endpoint} failed: {e}")
        except ValueError as e:
            logger.error(f"CBS request {endpoint} returned invalid JSON: {e}")
            raise CBSRequestError(f"CBS request {endpoint} returned an invalid response")

    def login(self) -> Dict[str, Any]:
        res = self._post("/login", {
            "username": self.credentials.username,
            "password": self.credentials.password,
            "DeviceID": self.credentials.device_id,
        }, authenticated=False)

        if not res.get("token"):
            raise CBSRequestError("CBS login did not return a token")

        self.auth_info = {
            "userID": res.get("userID"),
            "token": res["token"],
            "terminalId": res.get("terminalId"),
        }
        return self.auth_info

    def _upload_image(self, path: Path) -> str:
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            raise CBSRequestError(f"Cannot read {path}: {e}")

        res = self._post("/picture", {"image": base64.b64encode(data).decode("ascii")})
        picture_id = res.get("pictureId")
        if picture_id is None:
            raise CBSRequestError("CBS did not return a pictureId")
        return str(picture_id)

    def upload_picture(self, path: Path) -> str:
        return self._upload_image(path)

    def upload_id(self, path: Path) -> str:
        return self._upload_image(path)

    def create_client(self, payload: Dict[str, Any]) -> str:
        """Create the customer and return its CBS reference."""
        res = self._post("/customer", payload)
        ref = res.get("customerID") or res.get("id")
        if not ref:
            raise CBSRequestError(res.get("message") or "CBS did not return a customer reference")
        return str(ref)
