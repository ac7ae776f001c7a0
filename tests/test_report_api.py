"""Tests for report_api.py: URL building, envelope decoding, error taxonomy."""

from unittest.mock import Mock

import pytest
import requests

from report_api import (
    ApplicationError,
    ConfigurationError,
    NetworkError,
    ProtocolError,
    ReportApiClient,
    normalize_base_url,
    require_ok,
)


def make_client(text='{"ok": true}', status_code=200):
    client = ReportApiClient("https://relay.example.com/api/gas/")
    client._session = Mock()
    client._session.request.return_value = Mock(text=text, status_code=status_code)
    return client


# ============================================================
# Test: Endpoint configuration
# ============================================================

def test_trailing_slashes_are_stripped():
    assert normalize_base_url("https://relay.example.com/api/gas///") == "https://relay.example.com/api/gas"


def test_missing_scheme_defaults_to_https():
    assert normalize_base_url("relay.example.com/api/gas") == "https://relay.example.com/api/gas"


def test_empty_base_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        ReportApiClient("   ")


def test_from_env_reads_base_and_timeout():
    client = ReportApiClient.from_env({"STUDY_REPORT_API_BASE": "relay.example.com", "STUDY_REPORT_TIMEOUT": "5"})
    assert client.base_url == "https://relay.example.com"
    assert client.timeout == 5.0


def test_from_env_rejects_non_numeric_timeout():
    with pytest.raises(ConfigurationError):
        ReportApiClient.from_env({"STUDY_REPORT_API_BASE": "relay.example.com", "STUDY_REPORT_TIMEOUT": "soon"})


# ============================================================
# Test: Request shape
# ============================================================

def test_call_posts_body_with_path_and_query_params():
    client = make_client()
    client.call("/admin/group-table", {}, {"group_name": "グループ3", "admin_token": "secret", "skip": None})

    args, kwargs = client._session.request.call_args
    assert args == ("POST", "https://relay.example.com/api/gas")
    assert kwargs["params"] == [
        ("path", "/admin/group-table"),
        ("group_name", "グループ3"),
        ("admin_token", "secret"),
    ]
    assert kwargs["json"] == {}
    assert kwargs["timeout"] == client.timeout


def test_call_without_body_sends_empty_object():
    client = make_client()
    client.call("/auth/auto-login")
    assert client._session.request.call_args.kwargs["json"] == {}


def test_query_values_are_stringified():
    client = make_client()
    client.call("/x", {"a": 1}, {"page": 2})
    assert ("page", "2") in client._session.request.call_args.kwargs["params"]


# ============================================================
# Test: Response decoding
# ============================================================

def test_ok_false_is_returned_verbatim():
    client = make_client('{"ok": false, "message": "no permission"}')
    assert client.call("/admin/group-table") == {"ok": False, "message": "no permission"}


def test_non_2xx_envelope_is_still_decoded():
    client = make_client('{"ok": false, "message": "fetch to GAS failed"}', status_code=502)
    assert client.call("/student/get-week")["message"] == "fetch to GAS failed"


def test_non_json_body_raises_protocol_error_with_truncated_snippet():
    body = "<html>" + "x" * 500
    client = make_client(body)
    with pytest.raises(ProtocolError) as excinfo:
        client.call("/student/get-week")
    assert excinfo.value.snippet == body[:200]
    assert len(excinfo.value.snippet) == 200
    assert "Invalid JSON response" in str(excinfo.value)


@pytest.mark.parametrize("text", ["[1, 2]", '{"message": "no ok key"}', '"ok"'])
def test_json_without_envelope_is_a_protocol_error(text):
    client = make_client(text)
    with pytest.raises(ProtocolError):
        client.call("/student/get-week")


def test_transport_failure_raises_network_error():
    client = make_client()
    client._session.request.side_effect = requests.ConnectionError("connection refused")
    with pytest.raises(NetworkError):
        client.call("/auth/auto-login", {"device_token": "t"})
    assert client._session.request.call_count == 1


# ============================================================
# Test: Envelope helper
# ============================================================

def test_require_ok_passes_successful_payload_through():
    payload = {"ok": True, "student_key": "S001"}
    assert require_ok(payload, "fallback") is payload


def test_require_ok_prefers_backend_message():
    with pytest.raises(ApplicationError) as excinfo:
        require_ok({"ok": False, "message": "no permission"}, "fallback")
    assert excinfo.value.message == "no permission"


def test_require_ok_uses_fallback_for_blank_message():
    with pytest.raises(ApplicationError, match="fallback"):
        require_ok({"ok": False, "message": ""}, "fallback")


def test_client_is_a_context_manager():
    client = make_client()
    with client as entered:
        assert entered is client
    client._session.close.assert_called_once_with()
