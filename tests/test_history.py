"""Tests for the branching history graph."""
import logging

import pytest

from dashstate import ConfigNode, HistoryGraph, HistoryConfig
from dashstate.config_tree import add_child, find, remove, replace, update_properties
from dashstate.errors import MalformedSnapshotError
from dashstate.snapshot_codec import encode


@pytest.fixture
def graph(sample_tree):
    return HistoryGraph(sample_tree)


def set_title(title):
    return lambda tree: update_properties(tree, tree.id, title=title)


def test_default_root_is_single_container():
    graph = HistoryGraph()
    tree = graph.current_tree()
    assert tree.kind == 'container'
    assert tree.children == []
    assert graph.size == 1
    assert graph.cursor is graph.root
    assert not graph.can_undo()
    assert not graph.can_redo()


def test_end_to_end_add_undo_redo():
    """Add a child, undo back to the bare root, redo to the same child."""
    graph = HistoryGraph()
    root_id = graph.current_tree().id

    tree = graph.apply(lambda t: add_child(t, root_id), label="add widget")
    assert graph.size == 2
    assert graph.cursor is not graph.root
    assert len(tree.children) == 1
    child_id = tree.children[0].id

    assert graph.undo()
    assert graph.current_tree().children == []
    assert graph.cursor is graph.root

    assert graph.redo()
    redone = graph.current_tree()
    assert [c.id for c in redone.children] == [child_id]


class TestNoOpDedup:
    """Edits that leave the encoding unchanged record nothing."""

    def test_identity_mutation(self, graph):
        cursor = graph.cursor
        graph.apply(lambda tree: tree)
        assert graph.size == 1
        assert graph.cursor is cursor

    def test_missing_target_is_noop(self, graph):
        graph.apply(lambda tree: remove(tree, 'nope'))
        assert graph.size == 1

    def test_rebuilt_equal_tree(self, graph, sample_tree):
        rebuilt = ConfigNode(id='root', kind='container',
                             properties={'isDataEnabled': True, 'title': 'Dashboard'},
                             children=sample_tree.children)
        graph.apply(lambda _tree: rebuilt)
        assert graph.size == 1

    def test_noop_returns_current_tree(self, graph, sample_tree):
        assert graph.apply(lambda tree: tree) == sample_tree


def test_mutation_receives_private_copy(graph):
    """In-place edits by a mutation never leak into the recorded snapshot."""
    before = graph.export_json()

    def mutate_in_place(tree):
        tree.properties['title'] = 'mutated'
        return tree

    graph.apply(mutate_in_place)
    assert graph.root.encoded == before
    assert graph.current_tree().properties['title'] == 'mutated'


def test_returned_tree_is_independent(graph):
    tree = graph.current_tree()
    tree.children.clear()
    assert len(graph.current_tree().children) == 1


def test_undo_redo_inverse(graph):
    graph.apply(set_title('one'))
    graph.apply(lambda tree: add_child(tree, 'row'))
    before = graph.current_tree()
    assert graph.undo()
    assert graph.current_tree() != before
    assert graph.redo()
    assert graph.current_tree() == before


def test_undo_at_root_and_redo_at_leaf(graph):
    assert graph.undo() is False
    graph.apply(set_title('one'))
    assert graph.redo() is False


class TestDuplicateIds:
    """Edits that would repeat a node id are rejected before recording."""

    def test_add_existing_id_rejected(self, graph):
        cursor = graph.cursor
        with pytest.raises(MalformedSnapshotError):
            graph.apply(lambda tree: add_child(tree, 'root', ConfigNode(id='table', kind='tableView')))
        assert graph.size == 1
        assert graph.cursor is cursor
        assert len(graph.current_tree().children) == 1

    def test_history_usable_after_rejection(self, graph):
        with pytest.raises(MalformedSnapshotError):
            graph.apply(lambda tree: replace(tree, 'graph', ConfigNode(id='row', kind='row')))
        graph.apply(set_title('after'))
        assert graph.size == 2
        assert graph.current_tree().properties['title'] == 'after'

    def test_rejected_inside_atomic_block(self, graph):
        with pytest.raises(MalformedSnapshotError):
            with graph.atomic("dup"):
                graph.apply(lambda tree: add_child(tree, 'row', ConfigNode(id='table', kind='mapView')))
        assert graph.size == 1
        assert find(graph.current_tree(), 'row').children[-1].id == 'graph'

    def test_no_listener_fired(self, graph):
        events = []
        graph.connect_listener(lambda: events.append(1))
        with pytest.raises(MalformedSnapshotError):
            graph.apply(lambda tree: add_child(tree, 'root', ConfigNode(id='root', kind='row')))
        assert events == []


class TestBranching:
    """Edits after undo start a new branch without losing the old one."""

    def test_branch_preservation(self, graph):
        parent = graph.cursor
        graph.apply(set_title('A'), label="A")
        node_a = graph.cursor
        graph.undo()
        graph.apply(set_title('B'), label="B")
        node_b = graph.cursor

        assert parent.children == [node_a, node_b]
        assert graph.size == 3

        graph.undo()
        assert graph.redo()
        assert graph.cursor is node_b

        assert graph.jump(node_a)
        assert graph.current_tree().properties['title'] == 'A'

    def test_edit_after_jump_adds_sibling(self, graph):
        graph.apply(set_title('A'))
        graph.apply(set_title('A2'))
        graph.jump(graph.root)
        graph.apply(set_title('C'))
        assert len(graph.root.children) == 2
        assert graph.root.children[-1] is graph.cursor

    def test_same_state_on_two_branches_are_distinct_snapshots(self, graph):
        graph.apply(set_title('A'))
        first = graph.cursor
        graph.undo()
        graph.apply(set_title('B'))
        graph.apply(set_title('A'))
        assert graph.cursor is not first
        assert graph.cursor.encoded == first.encoded


class TestJump:
    """Test jump() and jump_to_id()."""

    def test_jump_rejects_foreign_snapshot(self, graph):
        other = HistoryGraph()
        assert graph.jump(other.root) is False
        assert graph.cursor is graph.root

    def test_jump_to_id(self, graph):
        graph.apply(set_title('A'))
        target = graph.cursor
        graph.undo()
        assert graph.jump_to_id(target.id)
        assert graph.cursor is target
        assert graph.jump_to_id('missing') is False


class TestExportImport:
    """Test export_json() and import_json()."""

    def test_export_is_canonical_encoding(self, graph, sample_tree):
        assert graph.export_json() == encode(sample_tree)

    def test_import_participates_in_history(self, graph):
        doc = '{"id": "new", "widgetType": "column", "properties": {}, "children": []}'
        tree = graph.import_json(doc)
        assert tree == ConfigNode(id='new', kind='column')
        assert graph.size == 2
        assert graph.cursor.label == "import"
        assert graph.undo()
        assert graph.current_tree().id == 'root'

    def test_import_of_identical_tree_is_noop(self, graph):
        graph.import_json(graph.export_json())
        assert graph.size == 1

    def test_malformed_import_leaves_state(self, graph):
        cursor = graph.cursor
        with pytest.raises(MalformedSnapshotError):
            graph.import_json('{"id": "x", "children": []}')
        assert graph.cursor is cursor
        assert graph.size == 1


class TestAtomic:
    """Test atomic() coalescing."""

    def test_single_snapshot_for_block(self, graph):
        with graph.atomic("add two"):
            graph.apply(lambda tree: add_child(tree, 'row'))
            graph.apply(set_title('grouped'))
            assert graph.size == 1
            assert graph.current_tree().properties['title'] == 'grouped'
        assert graph.size == 2
        assert graph.cursor.label == "add two"
        assert len(find(graph.current_tree(), 'row').children) == 3

    def test_nested_blocks_record_once(self, graph):
        with graph.atomic("outer"):
            graph.apply(set_title('one'))
            with graph.atomic("inner"):
                graph.apply(set_title('two'))
        assert graph.size == 2
        assert graph.cursor.label == "outer"

    def test_net_noop_block_records_nothing(self, graph):
        with graph.atomic("flip"):
            graph.apply(set_title('temp'))
            graph.apply(set_title('Dashboard'))
        assert graph.size == 1

    def test_error_discards_pending(self, graph):
        with pytest.raises(RuntimeError):
            with graph.atomic("broken"):
                graph.apply(set_title('half'))
                raise RuntimeError("boom")
        assert graph.size == 1
        assert graph.current_tree().properties['title'] == 'Dashboard'

    def test_navigation_forbidden_inside_block(self, graph):
        with graph.atomic("nav"):
            with pytest.raises(RuntimeError):
                graph.undo()


class TestListeners:
    """Test change notification."""

    def test_fired_on_changes_only(self, graph):
        events = []
        graph.connect_listener(lambda: events.append(graph.cursor))
        graph.apply(lambda tree: tree)
        assert events == []
        graph.apply(set_title('A'))
        graph.undo()
        graph.redo()
        graph.jump(graph.root)
        assert len(events) == 4
        assert events[-1] is graph.root

    def test_failing_listener_does_not_break_edit(self, graph, caplog):
        def broken():
            raise ValueError("listener bug")

        graph.connect_listener(broken)
        with caplog.at_level(logging.WARNING):
            graph.apply(set_title('A'))
        assert graph.size == 2
        assert "listener bug" in caplog.text

    def test_disconnect(self, graph):
        events = []
        callback = lambda: events.append(1)  # noqa: E731
        graph.connect_listener(callback)
        graph.disconnect_listener(callback)
        graph.apply(set_title('A'))
        assert events == []


def test_history_info(graph):
    graph.apply(set_title('A'), label="A")
    graph.undo()
    graph.apply(set_title('B'), label="B")
    info = graph.get_history_info()
    assert [row['label'] for row in info] == ['init', 'A', 'B']
    assert [row['is_current'] for row in info] == [False, False, True]
    assert [row['on_current_path'] for row in info] == [True, False, True]
    assert info[0]['num_children'] == 2
    assert info[2]['parent_id'] == graph.root.id


def test_branch_path(graph):
    graph.apply(set_title('A'))
    graph.apply(set_title('B'))
    assert [s.depth for s in graph.branch_path()] == [0, 1, 2]


def test_warn_size(sample_tree, caplog):
    graph = HistoryGraph(sample_tree, config=HistoryConfig(warn_size=2))
    with caplog.at_level(logging.WARNING):
        graph.apply(set_title('A'))
        assert "warn_size" not in caplog.text
        graph.apply(set_title('B'))
        graph.apply(set_title('C'))
    assert caplog.text.count("warn_size=2") == 1
    assert graph.size == 4
