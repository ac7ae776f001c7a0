"""Minimal JSON-over-POST helper for the study report backend relay."""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlsplit

import requests

LOGGER = logging.getLogger(__name__)

SNIPPET_LENGTH = 200


class ReportApiError(Exception):
    """Base class for every failure surfaced by the report backend client."""


class ConfigurationError(ReportApiError):
    pass


class NetworkError(ReportApiError):
    """The request never produced a response (DNS, TLS, timeout, ...)."""


class ProtocolError(ReportApiError):
    """The response was not a JSON envelope."""

    def __init__(self, message: str, snippet: str = "") -> None:
        super().__init__(message)
        self.snippet = snippet


class ApplicationError(ReportApiError):
    """The backend answered ``ok: false``."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ValueError):
    """Local input (a report draft or a login form) failed validation."""


def normalize_base_url(base: str) -> str:
    base = (base or "").strip().rstrip("/")
    if not base:
        raise ConfigurationError("STUDY_REPORT_API_BASE is not set")
    if not urlsplit(base).scheme:
        base = "https://" + base.lstrip("/")
    return base


def require_ok(payload: Mapping[str, Any], fallback: str) -> Mapping[str, Any]:
    """Return *payload* when it reports success, else raise :class:`ApplicationError`."""

    if payload.get("ok"):
        return payload
    raise ApplicationError(str(payload.get("message") or fallback))


class ReportApiClient:
    """Thin wrapper around the backend relay.

    Every logical endpoint is reached through one URL; the endpoint name is
    carried in the ``path`` query parameter and the relay forwards the body.
    """

    base_url: str

    def __init__(self, base_url: str, *, timeout: float = 30) -> None:
        self.base_url = normalize_base_url(base_url)
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ReportApiClient":
        environ = os.environ if environ is None else environ
        base = environ.get("STUDY_REPORT_API_BASE", "")
        try:
            timeout = float(environ.get("STUDY_REPORT_TIMEOUT", "30"))
        except ValueError as exc:
            raise ConfigurationError("STUDY_REPORT_TIMEOUT must be a number") from exc
        return cls(base, timeout=timeout)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _params(path: str, query: Optional[Mapping[str, Any]]) -> list[tuple[str, str]]:
        params: list[tuple[str, str]] = [("path", path)]
        for key, value in (query or {}).items():
            if value is None:
                continue
            params.append((key, str(value)))
        return params

    @staticmethod
    def _decode(text: str) -> Dict[str, Any]:
        try:
            payload = json.loads(text)
        except ValueError as exc:
            snippet = text[:SNIPPET_LENGTH]
            LOGGER.error("Invalid JSON response: %s", snippet)
            raise ProtocolError(f"Invalid JSON response: {snippet}", snippet) from exc
        if not isinstance(payload, dict) or "ok" not in payload:
            snippet = text[:SNIPPET_LENGTH]
            LOGGER.error("Response is not an ok/message envelope: %s", snippet)
            raise ProtocolError(f"Malformed response envelope: {snippet}", snippet)
        return payload

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def call(
        self,
        path: str,
        body: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """POST *body* to the logical endpoint *path* and return the JSON envelope."""

        params = self._params(path, query)
        LOGGER.debug("POST %s path=%s", self.base_url, path)
        try:
            response = self._session.request(
                "POST",
                self.base_url,
                params=params,
                json=dict(body or {}),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            LOGGER.error("Request to %s failed: %s", path, exc)
            raise NetworkError(f"Request to {path} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            LOGGER.warning("%s answered HTTP %s", path, response.status_code)
        return self._decode(response.text)

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "ReportApiClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
