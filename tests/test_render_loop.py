from pathlib import Path

import pytest
from structlog.testing import capture_logs

from conftest import write
from staticforge.context import DiscoveredFile, RenderContext
from staticforge.errors import FileProcessingError
from staticforge.events import Event, EventBus
from staticforge.render_loop import RenderLoop, compute_output_path
from staticforge.result import ErrorTracker


def make_loop(tmp_path: Path) -> RenderLoop:
    bus = EventBus()
    return RenderLoop(bus, bus.services, tmp_path / "content", tmp_path / "public", ErrorTracker())


def simple_renderer(loop: RenderLoop):
    def render(services, context):
        context.rendered_content = f"<p>{context.file_path.name}</p>"
        context.output_path = loop.compute_output_path(context.file_path)
        return context

    return render


def test_compute_output_path(tmp_path):
    source = tmp_path / "content"
    out = tmp_path / "public"
    assert compute_output_path(source / "a" / "b.md", source, out) == out / "a" / "b.html"
    assert compute_output_path(source / "c.HTML", source, out) == out / "c.html"
    assert compute_output_path(source / "feed.xml", source, out) == out / "feed.xml"
    assert compute_output_path(tmp_path / "elsewhere.md", source, out) == out / "elsewhere.html"


def test_events_fire_in_order_and_output_is_written(tmp_path):
    loop = make_loop(tmp_path)
    order = []
    loop.bus.register_listener(Event.PRE_RENDER, lambda s, c: order.append("pre"))
    loop.bus.register_listener(Event.RENDER, simple_renderer(loop))
    loop.bus.register_listener(Event.POST_RENDER, lambda s, c: order.append("post"))

    source = tmp_path / "content" / "docs" / "page.md"
    loop.process_all([DiscoveredFile(path=source)])

    assert order == ["pre", "post"]
    out = tmp_path / "public" / "docs" / "page.html"
    assert out.read_text(encoding="utf-8") == "<p>page.md</p>"
    assert loop.tracker.files_processed == 1


def test_each_file_gets_a_fresh_context(tmp_path):
    loop = make_loop(tmp_path)
    seen = []

    def pre(services, context):
        seen.append(dict(context.metadata))
        context.metadata["touched"] = True
        return context

    loop.bus.register_listener(Event.PRE_RENDER, pre)
    loop.process_all(
        [DiscoveredFile(path=tmp_path / "content" / name) for name in ("a.md", "b.md")]
    )
    assert seen == [{}, {}]


def test_skip_file_short_circuits_remaining_events(tmp_path):
    loop = make_loop(tmp_path)
    calls = []

    def skip(services, context):
        context.skip_file = True
        return context

    loop.bus.register_listener(Event.PRE_RENDER, skip, priority=1)
    loop.bus.register_listener(Event.PRE_RENDER, lambda s, c: calls.append("pre-after"), priority=2)
    loop.bus.register_listener(Event.RENDER, lambda s, c: calls.append("render"))
    loop.bus.register_listener(Event.POST_RENDER, lambda s, c: calls.append("post"))

    loop.process_all([DiscoveredFile(path=tmp_path / "content" / "draft.md")])

    assert calls == ["pre-after"]
    assert loop.tracker.files_processed == 0
    assert [s.path.name for s in loop.tracker.skipped] == ["draft.md"]


def test_skip_during_render_stops_post_render_and_write(tmp_path):
    loop = make_loop(tmp_path)
    post_calls = []

    def render_then_skip(services, context):
        simple_renderer(loop)(services, context)
        context.skip_file = True
        return context

    loop.bus.register_listener(Event.RENDER, render_then_skip)
    loop.bus.register_listener(Event.POST_RENDER, lambda s, c: post_calls.append(c.file_path))

    loop.process_all([DiscoveredFile(path=tmp_path / "content" / "a.md")])

    assert post_calls == []
    assert not (tmp_path / "public" / "a.html").exists()
    assert loop.tracker.files_processed == 0
    (skipped,) = loop.tracker.skipped
    assert skipped.reason == "skipped during RENDER"


def test_skip_during_post_render_prevents_write(tmp_path):
    loop = make_loop(tmp_path)

    def skip(services, context):
        context.skip_file = True
        return context

    loop.bus.register_listener(Event.RENDER, simple_renderer(loop))
    loop.bus.register_listener(Event.POST_RENDER, skip)

    loop.process_all([DiscoveredFile(path=tmp_path / "content" / "a.md")])

    assert not (tmp_path / "public" / "a.html").exists()
    assert [s.reason for s in loop.tracker.skipped] == ["skipped during POST_RENDER"]


def test_pre_render_skip_reason_names_the_stage(tmp_path):
    loop = make_loop(tmp_path)

    def skip(services, context):
        context.skip_file = True
        return context

    loop.bus.register_listener(Event.PRE_RENDER, skip)
    loop.process_all([DiscoveredFile(path=tmp_path / "content" / "a.md")])
    assert [s.reason for s in loop.tracker.skipped] == ["skipped during PRE_RENDER"]


def test_non_discovered_file_items_fail_individually(tmp_path):
    loop = make_loop(tmp_path)
    loop.bus.register_listener(Event.RENDER, simple_renderer(loop))
    source = tmp_path / "content"

    loop.process_all(["content/a.md", DiscoveredFile(path=source / "b.md"), None])

    assert (tmp_path / "public" / "b.html").exists()
    assert loop.tracker.files_processed == 1
    assert [f.stage for f in loop.tracker.failures] == ["validate", "validate"]
    assert loop.tracker.failures[0].subject == "content/a.md"
    assert "expected DiscoveredFile, got str" in loop.tracker.failures[0].message
    assert "got NoneType" in loop.tracker.failures[1].message


def test_no_renderer_means_nothing_written(tmp_path):
    loop = make_loop(tmp_path)
    loop.process_all([DiscoveredFile(path=tmp_path / "content" / "a.md")])
    assert not (tmp_path / "public").exists()
    assert loop.tracker.files_processed == 1
    assert loop.tracker.failures == []


def test_output_path_collision_keeps_first_claimant(tmp_path):
    loop = make_loop(tmp_path)
    rendered = []

    def render(services, context):
        rendered.append(context.file_path.name)
        return simple_renderer(loop)(services, context)

    loop.bus.register_listener(Event.RENDER, render)
    source = tmp_path / "content"

    with capture_logs() as logs:
        loop.process_all(
            [DiscoveredFile(path=source / "page.md"), DiscoveredFile(path=source / "page.html")]
        )

    assert rendered == ["page.md"]
    assert (tmp_path / "public" / "page.html").read_text(encoding="utf-8") == "<p>page.md</p>"
    assert loop.tracker.skipped[0].path == source / "page.html"
    warning = next(e for e in logs if e["log_level"] == "warning")
    assert warning["claimed_by"] == str(source / "page.md")
    assert warning["skipped"] == str(source / "page.html")


def test_reservations_reset_between_runs(tmp_path):
    loop = make_loop(tmp_path)
    loop.bus.register_listener(Event.RENDER, simple_renderer(loop))
    files = [DiscoveredFile(path=tmp_path / "content" / "a.md")]
    loop.process_all(files)
    loop.process_all(files)
    assert loop.tracker.files_processed == 2
    assert loop.tracker.skipped == []


def test_renderer_chosen_path_clash_fails_the_file(tmp_path):
    loop = make_loop(tmp_path)
    target = tmp_path / "public" / "a.html"

    def render(services, context):
        context.rendered_content = "x"
        context.output_path = target
        return context

    loop.bus.register_listener(Event.RENDER, render)
    source = tmp_path / "content"
    loop.process_all([DiscoveredFile(path=source / "a.md"), DiscoveredFile(path=source / "b.md")])

    (failure,) = loop.tracker.failures
    assert failure.subject == str(source / "b.md")
    assert failure.stage == Event.RENDER
    assert loop.tracker.files_processed == 1


def test_failing_file_does_not_stop_the_loop(tmp_path):
    loop = make_loop(tmp_path)

    def render(services, context):
        if context.file_path.name == "bad.md":
            raise RuntimeError("template exploded")
        return simple_renderer(loop)(services, context)

    loop.bus.register_listener(Event.RENDER, render, owner="Renderer")
    source = tmp_path / "content"
    files = [DiscoveredFile(path=source / name) for name in ("a.md", "bad.md", "c.md")]

    with capture_logs() as logs:
        loop.process_all(files)

    assert (tmp_path / "public" / "a.html").exists()
    assert (tmp_path / "public" / "c.html").exists()
    (failure,) = loop.tracker.failures
    assert failure.kind == "file"
    assert failure.stage == Event.RENDER
    assert "Renderer" in failure.message and "template exploded" in failure.message
    error = next(e for e in logs if e["event"] == "File processing error")
    assert error["file"] == str(source / "bad.md")
    assert error["stage"] == Event.RENDER


def test_listener_returning_wrong_type_fails_file(tmp_path):
    loop = make_loop(tmp_path)
    loop.bus.register_listener(Event.PRE_RENDER, lambda s, c: {"not": "a context"})
    loop.process_all([DiscoveredFile(path=tmp_path / "content" / "a.md")])
    (failure,) = loop.tracker.failures
    assert failure.stage == Event.PRE_RENDER
    assert "expected RenderContext" in failure.message


def test_write_failure_is_recorded_at_write_stage(tmp_path):
    loop = make_loop(tmp_path)
    write(tmp_path / "public", "a file where a directory is needed")
    loop.bus.register_listener(Event.RENDER, simple_renderer(loop))
    loop.process_all([DiscoveredFile(path=tmp_path / "content" / "a.md")])
    (failure,) = loop.tracker.failures
    assert failure.stage == "write"


def test_render_raises_file_processing_error(tmp_path):
    loop = make_loop(tmp_path)

    def boom(services, context):
        raise ValueError("broken")

    loop.bus.register_listener(Event.POST_RENDER, boom)
    context = RenderContext(file_path=tmp_path / "content" / "a.md")
    with pytest.raises(FileProcessingError) as excinfo:
        loop.render(context)
    assert excinfo.value.stage == Event.POST_RENDER
