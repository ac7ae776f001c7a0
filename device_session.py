"""Device-token login: first login, auto-login and the e-mail hint lookup."""
from __future__ import annotations

import dataclasses
import enum
import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Protocol

from formatting import has_any_space
from report_api import ApplicationError, ReportApiError, ValidationError, require_ok

LOGGER = logging.getLogger(__name__)

DEFAULT_TOKEN_PATH = Path.home() / ".study_report" / "device_token"


class SessionStore(Protocol):
    def read(self) -> str: ...

    def write(self, token: str) -> None: ...

    def clear(self) -> None: ...


class MemorySessionStore:
    def __init__(self, token: str = "") -> None:
        self.token = token

    def read(self) -> str:
        return self.token

    def write(self, token: str) -> None:
        self.token = token

    def clear(self) -> None:
        self.token = ""


class FileSessionStore:
    """Keeps the device token in a single text file."""

    def __init__(self, path: os.PathLike | str) -> None:
        self.path = Path(path)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "FileSessionStore":
        environ = os.environ if environ is None else environ
        return cls(environ.get("STUDY_REPORT_TOKEN_PATH") or DEFAULT_TOKEN_PATH)

    def read(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return ""

    def write(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(token, encoding="utf-8")

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


@dataclasses.dataclass(frozen=True)
class Session:
    device_token: str
    student_key: str = ""
    group_name: str = ""
    display_name: str = ""

    @classmethod
    def from_payload(cls, device_token: str, payload: Mapping[str, Any]) -> "Session":
        return cls(
            device_token=device_token,
            student_key=str(payload.get("student_key") or ""),
            group_name=str(payload.get("group_name") or ""),
            display_name=str(payload.get("display_name") or ""),
        )


class SessionState(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    RESOLVING = "resolving"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


class SessionResolver:
    """Exchanges the persisted device token for a student identity."""

    def __init__(self, client, store: SessionStore) -> None:
        self.client = client
        self.store = store
        self.state = SessionState.UNAUTHENTICATED
        self.session: Optional[Session] = None
        self.message = ""

    def resolve(self) -> SessionState:
        if self.state is not SessionState.UNAUTHENTICATED:
            return self.state

        token = self.store.read()
        if not token:
            LOGGER.info("No device token stored; login required")
            self.state = SessionState.REJECTED
            return self.state

        self.state = SessionState.RESOLVING
        try:
            payload = self.client.call("/auth/auto-login", {"device_token": token})
            require_ok(payload, "Automatic login was rejected.")
        except ReportApiError as exc:
            LOGGER.info("Auto-login rejected: %s", exc)
            self.store.clear()
            self.message = str(exc)
            self.state = SessionState.REJECTED
            return self.state

        self.session = Session.from_payload(token, payload)
        self.state = SessionState.AUTHENTICATED
        return self.state

    def reset(self) -> None:
        """Re-arm the resolver after a fresh login has stored a new token."""

        self.state = SessionState.UNAUTHENTICATED
        self.session = None
        self.message = ""


def validate_name(group_name: str, name: str) -> None:
    if not group_name:
        raise ValidationError("Choose a group.")
    if not (name or "").strip():
        raise ValidationError("Enter your full name.")
    if has_any_space(name):
        raise ValidationError("Enter your name without spaces.")


def first_login(client, store: SessionStore, group_name: str, name: str, email: str) -> Session:
    """Register this device for the student and persist the returned token."""

    validate_name(group_name, name)
    if not (email or "").strip():
        raise ValidationError("Enter your e-mail address.")

    payload = client.call(
        "/auth/first-login",
        {"group_name": group_name, "name_raw": name, "email_raw": email},
    )
    require_ok(payload, "Please check that your details are correct.")
    token = str(payload.get("device_token") or "")
    if not token:
        raise ApplicationError("Login succeeded but no device token was issued.")
    store.write(token)
    LOGGER.info("Device registered for group %s", group_name)
    return Session.from_payload(token, payload)


class EmailHintLookup:
    """Debounced roster lookup that suggests the e-mail on file for a name.

    Only one timer is pending at a time and only the most recently scheduled
    lookup may deliver its result.
    """

    def __init__(self, client, delay: float = 0.35) -> None:
        self.client = client
        self.delay = delay
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0

    def lookup(self, group_name: str, name: str) -> str:
        try:
            validate_name(group_name, name)
        except ValidationError:
            return ""
        try:
            payload = self.client.call("/auth/email-hint", {"group_name": group_name, "name_raw": name})
        except ReportApiError as exc:
            LOGGER.debug("E-mail hint lookup failed: %s", exc)
            return ""
        if not payload.get("ok"):
            return ""
        return str(payload.get("email_hint") or "")

    def schedule(self, group_name: str, name: str, callback: Callable[[str], None]) -> threading.Timer:
        with self._lock:
            self._cancel_locked()
            self._generation += 1
            generation = self._generation
            timer = threading.Timer(self.delay, self._run, args=(generation, group_name, name, callback))
            timer.daemon = True
            self._timer = timer
        timer.start()
        return timer

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _run(self, generation: int, group_name: str, name: str, callback: Callable[[str], None]) -> None:
        hint = self.lookup(group_name, name)
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        callback(hint)
