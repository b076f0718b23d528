import pytest

from slotgate.domain.models.http import HttpOutcome
from slotgate.main import app, create_dependencies

# These fixtures are defined in tests/conftest.py:
# runner: CliRunner
# fake_transport: FakeTransport (in-memory upstream)
# test_config: sets upstream.base_url / upstream.api_token

AMPLE = {"x-rate-limit-remaining": "10000"}
LIST_PATHS = [
    "/api/v1/meta/schemas/user/default",
    "/api/v1/groups",
    "/api/v1/users",
    "/oauth2/v1/clients",
    "/api/v1/as",
    "/api/v1/policies",
    "/api/v1/idps",
    "/api/v1/idps/credentials/keys",
]


@pytest.fixture(autouse=True)
def isolated_cli(mocker):
    """Keeps config files and root logging handlers untouched by CLI runs."""
    mocker.patch("slotgate.main.load_configuration")
    mocker.patch("slotgate.main.setup_logging")


@pytest.fixture
def upstream(mocker, fake_transport, test_config):
    for path in LIST_PATHS:
        fake_transport.route("GET", path, HttpOutcome(200, AMPLE, []))
    mocker.patch("slotgate.main.build_transport", return_value=fake_transport)
    return fake_transport


def test_reset_command_flow(runner, upstream):
    upstream.route("GET", "/api/v1/groups", HttpOutcome(200, AMPLE, [
        {"id": "g1", "type": "OKTA_GROUP", "profile": {"name": "Sales"}},
    ]))

    result = runner.invoke(app, ["reset", "--yes"])

    assert result.exit_code == 0, f"CLI command failed: {result.stdout}"
    assert "Reset summary" in result.stdout
    assert ("DELETE", "/api/v1/groups/g1") in [(verb, r.path) for verb, r in upstream.calls]
    assert upstream.closed is True


def test_reset_with_failures_exits_2(runner, upstream):
    upstream.route("GET", "/api/v1/idps", HttpOutcome(200, AMPLE, [{"id": "i1"}]))
    upstream.route("DELETE", "/api/v1/idps/i1", HttpOutcome(500, AMPLE, {"errorSummary": "Internal"}))

    result = runner.invoke(app, ["reset", "--yes"])

    assert result.exit_code == 2


def test_reset_declined_at_prompt(runner, upstream):
    result = runner.invoke(app, ["reset"], input="n\n")

    assert result.exit_code == 1
    assert "Aborted." in result.stdout
    assert upstream.calls == []


def test_request_command_flow(runner, upstream):
    upstream.route("GET", "/api/v1/users/u1", HttpOutcome(200, AMPLE, {"id": "u1", "status": "ACTIVE"}))

    result = runner.invoke(app, ["request", "get", "/api/v1/users/u1", "--query", "expand=groups"])

    assert result.exit_code == 0, f"CLI command failed: {result.stdout}"
    assert '"status": "ACTIVE"' in result.stdout
    verb, request = upstream.calls[0]
    assert verb == "GET"
    assert request.query == {"expand": "groups"}


def test_request_upstream_error_exits_2(runner, upstream):
    upstream.route("DELETE", "/api/v1/users/u9", HttpOutcome(404, AMPLE, {"errorSummary": "Not found"}))

    result = runner.invoke(app, ["request", "DELETE", "/api/v1/users/u9"])

    assert result.exit_code == 2
    assert "Not found" in result.stdout


def test_request_invalid_body_exits_2(runner, upstream):
    result = runner.invoke(app, ["request", "POST", "/api/v1/users", "--body", "{oops"])

    assert result.exit_code == 2
    assert "Invalid request" in result.stdout
    assert upstream.calls == []


def test_missing_configuration_exits_1(runner, monkeypatch):
    monkeypatch.delenv("SLOTGATE_UPSTREAM_BASE_URL", raising=False)
    monkeypatch.delenv("SLOTGATE_UPSTREAM_API_TOKEN", raising=False)

    result = runner.invoke(app, ["request", "GET", "/api/v1/users"])

    assert result.exit_code == 1
    assert "Configuration error" in result.stdout


def test_transport_connection_cap_matches_request_pool(mocker, test_config):
    test_config({"request.concurrency_limit": 150})
    build = mocker.patch("slotgate.main.build_transport")

    dependencies = create_dependencies(ui=mocker.MagicMock())

    build.assert_called_once_with(150)
    assert dependencies["request_pool"].size == 150
