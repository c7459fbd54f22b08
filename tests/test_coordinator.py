from __future__ import annotations

from pathlib import Path

from find_code.resolver.coordinator import ResolutionCoordinator
from find_code.resolver.models import Accuracy, ElementDescriptor, FailureKind, ResolutionFailure, ResolvedLocation
from find_code.resolver.ranker import RankedFile
from find_code.resolver.source_map_index import SourceMapIndex
from find_code.resolver.workspace import WorkspaceFileSet

from conftest import build_coordinator


def _form_html() -> str:
    lines = [f"<div>line {i}</div>" for i in range(20)]
    lines[12] = '<button id="submit-btn">Send</button>'
    return "\n".join(lines)


def test_scenario_a_fallback_without_source_maps(make_workspace) -> None:
    root = make_workspace({"form.html": _form_html(), "other.js": "console.log('<button>')"})
    outcome = build_coordinator(root).resolve(ElementDescriptor(tag_name="button", id="submit-btn"))

    assert isinstance(outcome, ResolvedLocation)
    assert Path(outcome.file_path) == root / "form.html"
    assert (outcome.line, outcome.column) == (12, 8)
    assert outcome.accuracy is Accuracy.FALLBACK
    assert outcome.position_known


def test_scenario_b_source_map_hit(make_workspace, write_map) -> None:
    root = make_workspace({"form.html": _form_html(), "src/Form.tsx": "export function Form() {}\n"})
    write_map(root, "dist/app.js.map", ["src/Form.tsx"], {0: [(0, 0, 0, 0)], 39: [(2, 0, 21, 4)]})
    descriptor = ElementDescriptor(
        tag_name="button", id="submit-btn", source_file_hint="app.js", generated_line=40, generated_column=3
    )

    outcome = build_coordinator(root).resolve(descriptor)

    assert isinstance(outcome, ResolvedLocation)
    assert Path(outcome.file_path) == root / "src" / "Form.tsx"
    assert (outcome.line, outcome.column) == (21, 4)
    assert outcome.accuracy is Accuracy.SOURCE_MAP


def test_scenario_c_no_evidence_is_no_match(make_workspace) -> None:
    root = make_workspace({"index.html": "<p>Hello</p>", "app.js": "export default 1;"})
    outcome = build_coordinator(root).resolve(ElementDescriptor(tag_name="div", text_content=""))

    assert isinstance(outcome, ResolutionFailure)
    assert outcome.kind is FailureKind.NO_MATCH


def test_source_map_hit_outside_workspace_falls_back(make_workspace, write_map) -> None:
    root = make_workspace({"form.html": _form_html()})
    write_map(root, "app.js.map", ["../../etc/passwd"], {0: [(0, 0, 0, 0)]})
    outcome = build_coordinator(root).resolve(ElementDescriptor(tag_name="button", id="submit-btn"))

    assert outcome.accuracy is Accuracy.FALLBACK
    assert outcome.line == 12


def test_source_map_hit_missing_on_disk_falls_back(make_workspace, write_map) -> None:
    root = make_workspace({"form.html": _form_html()})
    write_map(root, "app.js.map", ["src/Deleted.tsx"], {0: [(0, 0, 0, 0)]})
    outcome = build_coordinator(root).resolve(ElementDescriptor(tag_name="button", id="submit-btn"))
    assert outcome.accuracy is Accuracy.FALLBACK


def test_file_found_but_position_unknown(make_workspace) -> None:
    root = make_workspace({"main.js": "document.getElementById('submit-btn').focus();"})
    outcome = build_coordinator(root).resolve(ElementDescriptor(tag_name="button", id="submit-btn"))

    assert isinstance(outcome, ResolvedLocation)
    assert Path(outcome.file_path) == root / "main.js"
    assert not outcome.position_known
    assert (outcome.line, outcome.column) == (0, 0)
    assert outcome.to_dict()["positionUnknown"] is True


def test_missing_workspace_is_reported(tmp_path) -> None:
    coordinator = ResolutionCoordinator(WorkspaceFileSet(str(tmp_path / "nope")), SourceMapIndex())
    outcome = coordinator.resolve(ElementDescriptor(tag_name="div"))
    assert outcome.kind is FailureKind.WORKSPACE_MISSING

    unconfigured = ResolutionCoordinator(WorkspaceFileSet(None), SourceMapIndex())
    assert unconfigured.resolve(ElementDescriptor(tag_name="div")).kind is FailureKind.WORKSPACE_MISSING


def test_uninitialized_index_still_resolves_heuristically(make_workspace) -> None:
    root = make_workspace({"form.html": _form_html()})
    coordinator = ResolutionCoordinator(WorkspaceFileSet(str(root)), SourceMapIndex())
    outcome = coordinator.resolve(ElementDescriptor(tag_name="button", id="submit-btn"))
    assert outcome.accuracy is Accuracy.FALLBACK


def test_best_file_vanishing_before_location_is_file_unreadable(make_workspace, monkeypatch) -> None:
    root = make_workspace({"form.html": _form_html()})
    coordinator = build_coordinator(root)
    monkeypatch.setattr(
        coordinator.ranker, "rank", lambda *args, **kwargs: RankedFile(root / "gone.html", 25)
    )
    outcome = coordinator.resolve(ElementDescriptor(tag_name="button", id="submit-btn"))
    assert outcome.kind is FailureKind.FILE_UNREADABLE


def test_dispose_between_lookup_and_path_resolution_falls_back(make_workspace, write_map, monkeypatch) -> None:
    root = make_workspace({"form.html": _form_html(), "src/Form.tsx": "export function Form() {}\n"})
    write_map(root, "dist/app.js.map", ["src/Form.tsx"], {0: [(0, 0, 0, 0)]})
    coordinator = build_coordinator(root)
    index = coordinator.source_maps
    find = index.find_original_position

    def find_then_dispose(descriptor):
        hit = find(descriptor)
        index.dispose()
        return hit

    monkeypatch.setattr(index, "find_original_position", find_then_dispose)
    outcome = coordinator.resolve(ElementDescriptor(tag_name="button", id="submit-btn"))

    assert outcome.accuracy is Accuracy.FALLBACK
    assert Path(outcome.file_path) == root / "form.html"
