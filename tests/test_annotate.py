"""Tests for annotate: URL resolution and bounded, failure-isolated annotation."""

import threading
import time

from annotate import (
    annotate_images,
    failure_marker,
    resolve_and_annotate,
    resolve_images,
)
from figma_api import TransientError
from transform import ImageInfo
from vision import AnnotationError


class TestResolveImages:

    def test_missing_entries_are_skipped(self):
        resolver = lambda ids: {"a": "https://img/a.png", "b": None}  # noqa: E731
        assert resolve_images(["a", "b", "c"], resolver) == {"a": "https://img/a.png"}

    def test_resolver_failure_means_no_images(self):
        def resolver(ids):
            raise TransientError("503")
        assert resolve_images(["a"], resolver) == {}

    def test_no_ids_skips_call(self):
        def resolver(ids):
            raise AssertionError("should not be called")
        assert resolve_images([], resolver) == {}


class TestAnnotateImages:

    def test_partial_failure(self):
        def annotator(url):
            if url.endswith("bad.png"):
                raise AnnotationError("Vision API call failed (500): boom")
            return "A search icon"

        results = annotate_images({"good": "https://img/good.png", "bad": "https://img/bad.png"}, annotator)
        assert results == {
            "good": "A search icon",
            "bad": "Image analysis failed: Vision API call failed (500): boom",
        }

    def test_unexpected_exception_contained(self):
        def annotator(url):
            raise RuntimeError("socket closed")

        assert annotate_images({"x": "u"}, annotator) == {"x": failure_marker("socket closed")}

    def test_one_attempt_per_node(self):
        calls = []
        lock = threading.Lock()

        def annotator(url):
            with lock:
                calls.append(url)
            raise AnnotationError("nope")

        urls = {f"n{i}": f"https://img/{i}.png" for i in range(6)}
        results = annotate_images(urls, annotator, max_workers=3)
        assert sorted(calls) == sorted(urls.values())
        assert set(results) == set(urls)

    def test_concurrency_is_bounded(self):
        active = 0
        peak = 0
        lock = threading.Lock()

        def annotator(url):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.05)
            with lock:
                active -= 1
            return "ok"

        urls = {f"n{i}": f"u{i}" for i in range(10)}
        results = annotate_images(urls, annotator, max_workers=3)
        assert peak <= 3
        assert set(results.values()) == {"ok"}

    def test_deadline_marks_unfinished_as_timed_out(self):
        release = threading.Event()

        def annotator(url):
            if url == "slow":
                release.wait(5)
                return "too late"
            return "fast"

        try:
            results = annotate_images({"a": "fast", "b": "slow"}, annotator, total_timeout=0.3)
        finally:
            release.set()
        assert results == {"a": "fast", "b": "Image analysis failed: timed out"}

    def test_empty(self):
        assert annotate_images({}, lambda url: "x") == {}


class TestResolveAndAnnotate:

    def test_without_annotator_keeps_urls(self):
        result = resolve_and_annotate(["a"], lambda ids: {"a": "https://img/a.png"})
        assert result == {"a": ImageInfo("https://img/a.png", None)}

    def test_without_resolver(self):
        assert resolve_and_annotate(["a"], None, lambda url: "x") == {}

    def test_annotations_merged(self):
        result = resolve_and_annotate(
            ["a", "b"],
            lambda ids: {"a": "https://img/a.png"},
            lambda url: f"described {url}",
        )
        assert result == {"a": ImageInfo("https://img/a.png", "described https://img/a.png")}
