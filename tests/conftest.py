"""Shared fixtures for devwatch tests."""

import json
import time
from pathlib import Path
from typing import Callable, Dict, List

import pytest

from devwatch.config import WatchConfig
from devwatch.finders import ComponentFinder, StoreFinder
from devwatch.loaders import EntityLoader
from devwatch.models import RawEvent, RawEventKind
from devwatch.registry import EntityRegistry
from devwatch.watcher import EntityWatcher


class FakeWatchSource:
    """In-memory stand-in for RawWatchSource driven by ``fire``."""

    def __init__(self, name, paths, on_event, on_error=None, config=None, matcher=None):
        self.name = name
        self.paths = set(paths)
        self.on_event = on_event
        self.on_error = on_error
        self.config = config
        self.matcher = matcher
        self.ready = True
        self.started = False
        self.close_calls = 0
        self.added: List[Path] = []
        self.removed: List[Path] = []

    def start(self):
        self.started = True
        return self

    def wait_ready(self, timeout=None):
        return self.ready

    def add_path(self, path):
        self.added.append(path)
        if path in self.paths:
            return False
        self.paths.add(path)
        return True

    def remove_path(self, path):
        self.removed.append(path)
        if path not in self.paths:
            return False
        self.paths.discard(path)
        return True

    def watched_paths(self):
        return sorted(self.paths)

    def close(self):
        self.close_calls += 1
        return self.close_calls == 1

    def fire(self, kind: RawEventKind, path) -> bool:
        """Deliver an event if the source's matcher accepts it."""
        path = Path(path)
        if self.matcher is not None and not self.matcher(path):
            return False
        self.on_event(RawEvent(kind=kind, path=path, source=self.name))
        return True


class RecordingLoader(EntityLoader):
    """Loader recording every call as (operation, descriptor)."""

    def __init__(self):
        self.calls = []

    def reload_store(self, store):
        self.calls.append(("reload_store", store))

    def reload_component(self, component):
        self.calls.append(("reload_component", component))

    def unload_component(self, component):
        self.calls.append(("unload_component", component))


def write_manifest(directory: Path, properties: dict, filename: str = "cat-component.json") -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    manifest = directory / filename
    manifest.write_text(json.dumps(properties))
    return manifest


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.05) -> bool:
    """Poll until the predicate holds or the timeout expires."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def project(tmp_path):
    """
    A project with two stores and one component:

        catberry_stores/Main.js
        catberry_stores/nested/Other.js
        catberry_components/inside/cat-component.json
        catberry_components/inside/logic.js
        catberry_components/inside/cool.html
        catberry_components/inside/assets/style.css
    """
    root = tmp_path.resolve()
    stores = root / "catberry_stores"
    (stores / "nested").mkdir(parents=True)
    (stores / "Main.js").write_text("class Main {}")
    (stores / "nested" / "Other.js").write_text("class Other {}")

    inside = root / "catberry_components" / "inside"
    write_manifest(inside, {
        "name": "Inside",
        "logic": "./logic.js",
        "template": "cool.html",
        "additional": "some2",
    })
    (inside / "logic.js").write_text("class Inside {}")
    (inside / "cool.html").write_text("<div></div>")
    (inside / "assets").mkdir()
    (inside / "assets" / "style.css").write_text("div {}")
    return root


@pytest.fixture
def config(project):
    return WatchConfig(
        stores_directory=project / "catberry_stores",
        components_glob=[str(project / "catberry_components" / "**" / "cat-component.json")],
        debounce_ms=50,
        ready_timeout_s=5.0,
    )


@pytest.fixture
def registry():
    return EntityRegistry()


@pytest.fixture
def store_finder(registry, config, project):
    return StoreFinder(registry, config, cwd=project)


@pytest.fixture
def component_finder(registry, config, project):
    return ComponentFinder(registry, config, cwd=project)


@pytest.fixture
def loader():
    return RecordingLoader()


@pytest.fixture
def fake_sources():
    """Factory building FakeWatchSources, keyed by name in ``factory.created``."""
    created: Dict[str, FakeWatchSource] = {}

    def factory(**kwargs):
        source = FakeWatchSource(**kwargs)
        created[source.name] = source
        return source

    factory.created = created
    return factory


@pytest.fixture
def events():
    return []


@pytest.fixture
def watcher(store_finder, component_finder, loader, config, fake_sources, events):
    """A watcher over the found project, not started yet."""
    store_finder.find()
    component_finder.find()
    entity_watcher = EntityWatcher(
        store_finder,
        component_finder,
        loader,
        config,
        source_factory=fake_sources,
    )
    entity_watcher.add_listener(events.append)
    yield entity_watcher
    entity_watcher.close_watch()

