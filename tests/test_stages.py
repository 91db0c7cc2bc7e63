"""Tests for the snapshot and visibility passes against a fake render session."""
import pytest

from slimpage.config import PipelineConfig
from slimpage.models import ElementVisualState
from slimpage.snapshot import (
    NON_VISUAL_SELECTOR,
    NORMALIZE_SCRIPT,
    UNREGISTER_SERVICE_WORKERS_SCRIPT,
    normalize_snapshot,
)
from slimpage.visibility import REMOVE_SCRIPT, SAMPLE_SCRIPT, hidden_indexes, is_hidden, remove_hidden_elements


class FakeSession:
    def __init__(self, results, markup="<html></html>"):
        self.results = results
        self.markup = markup
        self.evaluated = []
        self.route_handlers = []
        self.navigations = []
        self.closed = False

    async def navigate(self, url, wait_until="load"):
        self.navigations.append((url, wait_until))

    async def intercept_requests(self, handler):
        self.route_handlers.append(handler)

    def on_response(self, handler):
        pass

    async def evaluate(self, script, arg=None):
        self.evaluated.append((script, arg))
        return self.results.get(script)

    async def settle(self, seconds):
        pass

    async def serialize(self):
        return self.markup

    async def close(self):
        self.closed = True


class FakeEngine:
    def __init__(self, session):
        self.session = session
        self.block_service_workers = None

    async def new_session(self, viewport, block_service_workers=False):
        self.block_service_workers = block_service_workers
        return self.session


def state(tag="div", width=10.0, height=10.0, opacity="1", visibility="visible", overflow="visible", display="block"):
    return ElementVisualState(
        tag=tag,
        width=width,
        height=height,
        opacity=opacity,
        visibility=visibility,
        overflow=overflow,
        display=display,
    )


class TestIsHidden:
    @pytest.mark.parametrize(
        "sample",
        [
            state(opacity="0"),
            state(display="none"),
            state(visibility="hidden"),
            state(overflow="hidden", width=0),
            state(overflow="hidden", height=0),
        ],
    )
    def test_hidden(self, sample):
        assert is_hidden(sample)

    @pytest.mark.parametrize(
        "sample",
        [
            state(),
            state(width=0, height=0),
            state(opacity="0.5"),
            state(tag="style", display="none"),
            state(tag="source", display="none"),
        ],
    )
    def test_visible_or_exempt(self, sample):
        assert not is_hidden(sample)

    def test_decisions_are_independent(self):
        states = [state(display="none"), state(), state(opacity="0")]
        assert hidden_indexes(states) == [0, 2]


class TestRemoveHiddenElements:
    @pytest.mark.asyncio
    async def test_replays_source_and_removes_hidden(self):
        samples = [
            {"tag": "div", "width": 0, "height": 0, "opacity": "1", "visibility": "visible", "overflow": "visible", "display": "none"},
            {"tag": "p", "width": 100, "height": 20, "opacity": "1", "visibility": "visible", "overflow": "visible", "display": "block"},
        ]
        session = FakeSession({SAMPLE_SCRIPT: samples}, markup="<p>kept</p>")
        engine = FakeEngine(session)
        config = PipelineConfig(url="https://example.com")

        markup = await remove_hidden_elements(engine, config, "<div hidden></div><p>kept</p>")

        assert markup == "<p>kept</p>"
        assert session.navigations == [("https://example.com/", "load")]
        assert (REMOVE_SCRIPT, [0]) in session.evaluated
        assert len(session.route_handlers) == 1
        assert engine.block_service_workers is True
        assert session.closed


class TestNormalizeSnapshot:
    @pytest.mark.asyncio
    async def test_runs_normalisation_and_unregisters_workers(self):
        session = FakeSession(
            {
                NORMALIZE_SCRIPT: {"removed": 3, "sized": 1, "deferred": 2},
                UNREGISTER_SERVICE_WORKERS_SCRIPT: 1,
            },
            markup="<html><body><img></body></html>",
        )
        config = PipelineConfig(url="https://example.com/page")

        markup = await normalize_snapshot(FakeEngine(session), config)

        assert markup == "<html><body><img></body></html>"
        assert session.navigations == [("https://example.com/page", "networkidle")]
        assert session.evaluated[0] == (NORMALIZE_SCRIPT, NON_VISUAL_SELECTOR)
        assert session.evaluated[1][0] == UNREGISTER_SERVICE_WORKERS_SCRIPT
        assert session.route_handlers == []

    @pytest.mark.asyncio
    async def test_source_html_is_substituted(self):
        session = FakeSession(
            {NORMALIZE_SCRIPT: {"removed": 0, "sized": 0, "deferred": 0}, UNREGISTER_SERVICE_WORKERS_SCRIPT: 0}
        )
        config = PipelineConfig(url="https://example.com/", source_html="<p>x</p>")
        await normalize_snapshot(FakeEngine(session), config)
        assert len(session.route_handlers) == 1
