from __future__ import annotations

import asyncio

import pytest
from starlette.testclient import TestClient

from find_code import server
from find_code.tools.resolve_tool import ResolveTool

from conftest import build_coordinator

FORM = '<form>\n  <button id="submit-btn">Send</button>\n</form>'


@pytest.fixture
def components(monkeypatch, make_workspace):
    """Install components for a small workspace and restore the globals afterwards."""
    for name in ("workspace", "source_map_index", "coordinator", "resolve_tool", "file_watcher", "gateway"):
        monkeypatch.setattr(server, name, None)
    root = make_workspace({"form.html": FORM})
    config = {
        **server.get_env_config(),
        "workspace_path": str(root),
        "enable_gateway": False,
        "enable_watcher": False,
        "exclude_dirs": ["node_modules"],
        "score_weights": {"element_id": 20},
    }
    server.initialize_components(config)
    yield root
    server.shutdown_components()


@pytest.fixture(scope="module")
def client() -> TestClient:
    return TestClient(server.mcp.streamable_http_app())


def test_get_env_config_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("WORKSPACE_PATH", "/tmp/project")
    monkeypatch.setenv("GATEWAY_PORT", "3100")
    monkeypatch.setenv("ENABLE_GATEWAY", "false")
    monkeypatch.setenv("EXCLUDE_DIRS", "node_modules, dist ,")
    monkeypatch.setenv("SCORE_WEIGHTS", '{"tag": 4}')

    config = server.get_env_config()

    assert config["workspace_path"] == "/tmp/project"
    assert config["gateway_port"] == 3100
    assert config["enable_gateway"] is False
    assert config["exclude_dirs"] == ["node_modules", "dist"]
    assert config["score_weights"] == {"tag": 4}


def test_invalid_score_weights_are_rejected(monkeypatch) -> None:
    monkeypatch.setenv("SCORE_WEIGHTS", "[1]")
    with pytest.raises(ValueError):
        server.get_env_config()


def test_initialize_components_wires_configuration(components) -> None:
    assert server.gateway is None
    assert server.file_watcher is None
    assert server.source_map_index.is_initialized
    assert server.coordinator.ranker.weights.element_id == 20
    assert server.health_check()["components"]["workspace"] is True
    assert server.get_gateway_status() == {"success": True, "enabled": False, "running": False}


def test_resolve_element_tool(components) -> None:
    result = asyncio.run(server.resolve_element(tag_name="button", id="submit-btn"))
    assert result["success"] is True
    assert result["location"]["filePath"] == str(components / "form.html")
    assert (result["location"]["line"], result["location"]["column"]) == (1, 10)


def test_index_tools(components, write_map) -> None:
    assert server.get_index_status()["index"]["source_maps"] == 0
    write_map(components, "dist/form.js.map", ["form.html"], {0: [(0, 0, 1, 2)]})

    result = asyncio.run(server.reinitialize_index())

    assert result["success"] is True
    assert result["source_maps"] == 1


def test_handle_map_changes_rebuilds_index(components, write_map) -> None:
    write_map(components, "dist/form.js.map", ["form.html"], {0: [(0, 0, 1, 2)]})
    asyncio.run(server.handle_map_changes({str(components / "dist" / "form.js.map")}, set()))
    assert server.source_map_index.get_stats()["source_maps"] == 1


def test_shutdown_disposes_index(components) -> None:
    index = server.source_map_index
    server.shutdown_components()
    assert not index.is_initialized


def test_tools_before_initialization(monkeypatch) -> None:
    monkeypatch.setattr(server, "resolve_tool", None)
    assert server.get_index_status()["success"] is False
    assert asyncio.run(server.resolve_element(tag_name="div"))["success"] is False


def test_http_fallback_resolves(components, client: TestClient) -> None:
    response = client.post("/find-element", json={"tagName": "button", "id": "submit-btn"})
    assert response.status_code == 200
    assert response.json()["location"]["accuracy"] == "fallback"


def test_http_fallback_error_statuses(components, client: TestClient) -> None:
    assert client.post("/find-element", json={"tagName": "video"}).status_code == 404
    assert client.post("/find-element", json={"id": "x"}).status_code == 400
    response = client.post("/find-element", content=b"{oops", headers={"content-type": "application/json"})
    assert response.status_code == 400


def test_http_fallback_before_initialization(monkeypatch, client: TestClient) -> None:
    monkeypatch.setattr(server, "resolve_tool", None)
    assert client.post("/find-element", json={"tagName": "div"}).status_code == 503


def test_http_fallback_uses_current_tool(monkeypatch, make_workspace, client: TestClient) -> None:
    root = make_workspace({"page.html": "<main>\n<nav>menu</nav>\n</main>"})
    monkeypatch.setattr(server, "resolve_tool", ResolveTool(build_coordinator(root)))
    response = client.post("/find-element", json={"tagName": "nav", "textContent": "menu"})
    assert response.json()["location"]["line"] == 1


def test_http_fallback_rejects_non_finite_numbers(components, client: TestClient) -> None:
    body = b'{"tagName": "button", "id": "submit-btn", "generatedLine": NaN}'
    response = client.post("/find-element", content=body, headers={"content-type": "application/json"})
    assert response.status_code == 400
    assert response.json()["error"]["kind"] == "InvalidDescriptor"
