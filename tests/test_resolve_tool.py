from __future__ import annotations

from find_code.resolver.coordinator import ResolutionCoordinator
from find_code.resolver.source_map_index import SourceMapIndex
from find_code.resolver.workspace import WorkspaceFileSet
from find_code.tools.resolve_tool import ResolveTool

from conftest import build_coordinator


def test_resolve_success_payload(make_workspace) -> None:
    root = make_workspace({"index.html": '<main>\n  <h1 class="title">Hello</h1>\n</main>'})
    tool = ResolveTool(build_coordinator(root))

    result = tool.resolve({"tagName": "H1", "className": "title", "textContent": "Hello"})

    assert result["success"] is True
    location = result["location"]
    assert location["filePath"] == str(root / "index.html")
    assert (location["line"], location["column"]) == (1, 6)
    assert location["accuracy"] == "fallback"


def test_resolve_reports_failure_kinds(make_workspace) -> None:
    root = make_workspace({"index.html": "<p>nothing</p>"})
    tool = ResolveTool(build_coordinator(root))

    assert tool.resolve({"tagName": "canvas"})["error"]["kind"] == "NoMatch"
    assert tool.resolve({"id": "x"})["error"]["kind"] == "InvalidDescriptor"
    assert tool.resolve("not an object")["error"]["kind"] == "InvalidDescriptor"


def test_reinitialize_picks_up_new_maps(make_workspace, write_map) -> None:
    root = make_workspace({"src/a.ts": ""})
    tool = ResolveTool(build_coordinator(root))
    assert tool.get_stats()["source_maps"] == 0

    write_map(root, "dist/a.js.map", ["src/a.ts"], {0: [(0, 0, 0, 0)]})
    result = tool.reinitialize()

    assert result["success"] is True
    assert result["source_maps"] == 1
    assert result["index"]["sources"] == 1


def test_reinitialize_without_workspace(tmp_path) -> None:
    coordinator = ResolutionCoordinator(WorkspaceFileSet(None), SourceMapIndex())
    result = ResolveTool(coordinator).reinitialize()
    assert result["error"]["kind"] == "WorkspaceMissing"


def test_svg_click_resolves_by_base_val(make_workspace) -> None:
    root = make_workspace({"icons.html": '<div>\n  <svg class="icon" viewBox="0 0 8 8"></svg>\n</div>'})
    tool = ResolveTool(build_coordinator(root))

    result = tool.resolve({"tagName": "svg", "className": {"baseVal": "icon", "animVal": "icon"}})

    assert result["success"] is True
    assert (result["location"]["line"], result["location"]["column"]) == (1, 7)
