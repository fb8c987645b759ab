import pytest

from stitch.graph import Parallel, Series, TaskGraph, TaskNode, describe, parallel, series, task


def noop():
    pass


def test_composites_nest_and_list_leaves():
    a, b, c, d = (task(name, noop) for name in "abcd")
    tree = series(a, parallel(b, series(c, d)), name="build")
    assert isinstance(tree, Series)
    assert isinstance(tree.children[1], Parallel)
    assert [leaf.name for leaf in tree.leaves()] == ["a", "b", "c", "d"]
    assert describe(tree) == "a -> (b | c -> d)"


def test_composites_reject_foreign_children():
    with pytest.raises(TypeError):
        series(task("a", noop), "b")
    with pytest.raises(TypeError):
        parallel(noop)


def test_nodes_are_immutable():
    node = task("a", noop, kind="render")
    assert node == TaskNode("a", noop, "render")
    with pytest.raises(Exception):
        node.name = "b"


def test_task_graph_lookup():
    a = task("a", noop)
    graph = TaskGraph({"a": a, "build": series(a)})
    assert graph["a"] is a
    assert "build" in graph
    assert graph.names() == ["a", "build"]
    with pytest.raises(KeyError, match="Unknown task: nope"):
        graph["nope"]
    # the exposed mapping is a copy
    graph.tasks["x"] = a
    assert "x" not in graph
