import asyncio

from stitch.executor import Executor
from stitch.graph import task
from stitch.router import ChangeRouter, ReloadScope, binding
from stitch.scheduler import RebuildScheduler


class Tracker:
    """Async step that records runs and the peak number of overlapping runs."""

    def __init__(self, delay=0.0, fail=False):
        self.delay = delay
        self.fail = fail
        self.runs = 0
        self.active = 0
        self.peak = 0

    async def __call__(self):
        self.runs += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
            if self.fail:
                raise RuntimeError("render exploded")
        finally:
            self.active -= 1


def make_scheduler(tmp_path, bindings, notified):
    router = ChangeRouter(tmp_path, bindings)
    return RebuildScheduler(router, Executor(verbose=False), notified.append, tick=0.01)


def test_single_change_reruns_binding_and_notifies_once(tmp_path):
    pages = Tracker()
    notified = []

    async def scenario():
        scheduler = make_scheduler(
            tmp_path, [binding("pages", "src/pages/**/*.html", [task("pages", pages)])], notified
        )
        scheduler.attach()
        scheduler.submit(tmp_path / "src" / "pages" / "index.html")
        await scheduler.drain()

    asyncio.run(scenario())
    assert pages.runs == 1
    assert notified == [ReloadScope.FULL]


def test_burst_within_tick_collapses_to_one_rerun(tmp_path):
    sass = Tracker()
    notified = []

    async def scenario():
        scheduler = make_scheduler(
            tmp_path,
            [binding("sass", "src/**/*.scss", [task("sass", sass)], reload=ReloadScope.STREAM)],
            notified,
        )
        scheduler.attach()
        for name in ["a.scss", "b.scss", "a.scss", "c.scss"]:
            scheduler.submit(tmp_path / "src" / name)
        await scheduler.drain()

    asyncio.run(scenario())
    assert sass.runs == 1
    assert notified == [ReloadScope.STREAM]


def test_changes_during_rerun_queue_behind_it(tmp_path):
    pages = Tracker(delay=0.1)
    notified = []

    async def scenario():
        scheduler = make_scheduler(
            tmp_path, [binding("pages", "src/**/*.html", [task("pages", pages)])], notified
        )
        scheduler.attach()
        scheduler.submit(tmp_path / "src" / "a.html")
        await asyncio.sleep(0.03)  # first rerun is now in flight
        assert pages.active == 1
        for _ in range(3):
            scheduler.submit(tmp_path / "src" / "a.html")
            await asyncio.sleep(0.015)
        await scheduler.drain()

    asyncio.run(scenario())
    assert pages.peak == 1
    assert pages.runs == 2
    assert notified == [ReloadScope.FULL, ReloadScope.FULL]


def test_failed_rerun_is_logged_and_not_notified(tmp_path, capsys):
    broken = Tracker(fail=True)
    notified = []

    async def scenario():
        scheduler = make_scheduler(
            tmp_path, [binding("pages", "src/**/*.html", [task("pages", broken)])], notified
        )
        scheduler.attach()
        scheduler.submit(tmp_path / "src" / "a.html")
        await scheduler.drain()
        first = list(scheduler.results)
        broken.fail = False
        scheduler.submit(tmp_path / "src" / "a.html")
        await scheduler.drain()
        return first

    first = asyncio.run(scenario())
    assert not first[0][1].ok
    assert broken.runs == 2
    assert notified == [ReloadScope.FULL]
    err = capsys.readouterr().err
    assert "Rebuild failed in 'pages'" in err
    assert "keeping previous output" in err


def test_pre_action_completes_before_render(tmp_path):
    order = []

    def refresh():
        order.append("refresh")

    def render():
        order.append("render")

    notified = []

    async def scenario():
        scheduler = make_scheduler(
            tmp_path,
            [
                binding(
                    "layouts",
                    "src/layouts/**/*",
                    [task("pages", render)],
                    pre_action=task("refresh_pages", refresh),
                )
            ],
            notified,
        )
        scheduler.attach()
        scheduler.submit(tmp_path / "src" / "layouts" / "default.html")
        await scheduler.drain()

    asyncio.run(scenario())
    assert order == ["refresh", "render"]
    assert notified == [ReloadScope.FULL]


def test_independent_bindings_each_notify(tmp_path):
    notified = []
    copy, js = Tracker(), Tracker()

    async def scenario():
        scheduler = make_scheduler(
            tmp_path,
            [
                binding("copy", "src/assets/img/**/*", [task("copy", copy)], reload=None),
                binding("javascript", "src/assets/js/**/*.js", [task("javascript", js)]),
            ],
            notified,
        )
        scheduler.attach()
        scheduler.submit(tmp_path / "src" / "assets" / "img" / "a.png")
        scheduler.submit(tmp_path / "src" / "assets" / "js" / "app.js")
        scheduler.submit(tmp_path / "README.md")
        await scheduler.drain()

    asyncio.run(scenario())
    assert (copy.runs, js.runs) == (1, 1)
    assert notified == [ReloadScope.FULL]


def test_submit_requires_attach(tmp_path):
    scheduler = make_scheduler(tmp_path, [], [])
    try:
        scheduler.submit(tmp_path / "x")
    except RuntimeError as exc:
        assert "attach" in str(exc)
    else:
        raise AssertionError("expected RuntimeError")


def page_and_layout_bindings(render, refreshes):
    pages_task = task("pages", render)

    def refresh():
        refreshes.append(render.active)

    return [
        binding("pages", "src/pages/**/*.html", [pages_task]),
        binding(
            "layouts",
            "src/{layouts,partials}/**/*",
            [pages_task],
            pre_action=task("refresh_pages", refresh),
        ),
    ]


def test_page_and_layout_change_in_one_batch_render_once(tmp_path):
    render = Tracker(delay=0.05)
    refreshes, notified = [], []

    async def scenario():
        scheduler = make_scheduler(tmp_path, page_and_layout_bindings(render, refreshes), notified)
        scheduler.attach()
        scheduler.submit(tmp_path / "src" / "pages" / "index.html")
        scheduler.submit(tmp_path / "src" / "partials" / "header.html")
        await scheduler.drain()
        return [name for name, _ in scheduler.results]

    names = asyncio.run(scenario())
    assert names == ["layouts"]
    assert render.runs == 1
    assert render.peak == 1
    assert refreshes == [0]
    assert notified == [ReloadScope.FULL]


def test_layout_change_waits_for_in_flight_page_render(tmp_path):
    render = Tracker(delay=0.1)
    refreshes, notified = [], []

    async def scenario():
        scheduler = make_scheduler(tmp_path, page_and_layout_bindings(render, refreshes), notified)
        scheduler.attach()
        scheduler.submit(tmp_path / "src" / "pages" / "index.html")
        await asyncio.sleep(0.03)  # page render is now in flight
        assert render.active == 1
        scheduler.submit(tmp_path / "src" / "layouts" / "default.html")
        await scheduler.drain()
        return [name for name, _ in scheduler.results]

    names = asyncio.run(scenario())
    assert names == ["pages", "layouts"]
    assert render.runs == 2
    assert render.peak == 1
    # the cache refresh only happens once the stale render has finished
    assert refreshes == [0]
    assert notified == [ReloadScope.FULL, ReloadScope.FULL]


def test_results_history_is_bounded(tmp_path):
    scheduler = make_scheduler(tmp_path, [], [])
    assert scheduler.results.maxlen is not None
    for index in range(scheduler.results.maxlen + 5):
        scheduler.results.append((f"run{index}", None))
    assert len(scheduler.results) == scheduler.results.maxlen
    assert scheduler.results[0][0] == "run5"
