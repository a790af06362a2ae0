# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Unit Tests for the Workflow Graph Model

Structural validation at load time, execution order, available data
sources and condition branch pruning.
"""

import pytest

from builders import make_edge, make_node, make_workflow
from hookflow.engine.exceptions import WorkflowStructureError
from hookflow.engine.graph import WorkflowGraph


def trigger(node_id="t"):
    return make_node(node_id, "webhook-trigger")


def action(node_id):
    return make_node(node_id, "transform", expression="1")


class TestStructuralValidation:
    """Every structural problem fails the load"""

    def test_empty_workflow(self):
        with pytest.raises(WorkflowStructureError, match="at least one node"):
            WorkflowGraph(make_workflow([], []))

    def test_duplicate_node_ids(self):
        with pytest.raises(WorkflowStructureError, match="Duplicate node ID"):
            WorkflowGraph(make_workflow([trigger(), action("a"), action("a")], []))

    def test_dangling_edge(self):
        """Test that an edge to a missing node is rejected"""
        with pytest.raises(WorkflowStructureError) as exc_info:
            WorkflowGraph(make_workflow([trigger(), action("a")], [make_edge("t", "ghost")]))

        assert str(exc_info.value) == "Edge references non-existent node: ghost"

    def test_self_loop(self):
        with pytest.raises(WorkflowStructureError, match="Self-loop"):
            WorkflowGraph(make_workflow([trigger(), action("a")], [make_edge("t", "a"), make_edge("a", "a")]))

    def test_no_trigger(self):
        with pytest.raises(WorkflowStructureError, match="exactly one trigger node, found 0"):
            WorkflowGraph(make_workflow([action("a")], []))

    def test_two_triggers(self):
        nodes = [trigger("t1"), make_node("t2", "schedule-trigger"), action("a")]

        with pytest.raises(WorkflowStructureError, match="found 2"):
            WorkflowGraph(make_workflow(nodes, [make_edge("t1", "a"), make_edge("t2", "a")]))

    def test_trigger_with_incoming_edge(self):
        with pytest.raises(WorkflowStructureError, match="cannot have incoming edges"):
            WorkflowGraph(make_workflow([trigger(), action("a")], [make_edge("t", "a"), make_edge("a", "t")]))

    def test_cycle_detected(self):
        """Test that A -> B -> A fails with the nodes involved"""
        nodes = [trigger(), action("a"), action("b")]
        edges = [make_edge("t", "a"), make_edge("a", "b"), make_edge("b", "a")]

        with pytest.raises(WorkflowStructureError) as exc_info:
            WorkflowGraph(make_workflow(nodes, edges))

        assert "Cycle detected" in str(exc_info.value)
        assert "'a'" in str(exc_info.value) and "'b'" in str(exc_info.value)

    def test_condition_duplicate_handle(self):
        nodes = [trigger(), make_node("c", "condition", expression="true"), action("a"), action("b")]
        edges = [make_edge("t", "c"), make_edge("c", "a", "true"), make_edge("c", "b", "true")]

        with pytest.raises(WorkflowStructureError, match="more than one outgoing edge"):
            WorkflowGraph(make_workflow(nodes, edges))

    def test_error_carries_field(self):
        with pytest.raises(WorkflowStructureError) as exc_info:
            WorkflowGraph(make_workflow([trigger()], [make_edge("t", "x")]))

        assert exc_info.value.field == "edges"


class TestExecutionOrder:

    @pytest.fixture
    def diamond(self):
        """T -> A, A -> B, A -> C, B -> D, C -> D"""
        nodes = [trigger("T"), action("A"), action("B"), action("C"), action("D")]
        edges = [
            make_edge("T", "A"),
            make_edge("A", "B"),
            make_edge("A", "C"),
            make_edge("B", "D"),
            make_edge("C", "D"),
        ]
        return WorkflowGraph(make_workflow(nodes, edges))

    def test_diamond_order(self, diamond):
        """Test that the merge node runs after both branches, siblings in edge order"""
        assert [n.id for n in diamond.execution_order()] == ["T", "A", "B", "C", "D"]

    def test_available_sources_for_merge_node(self, diamond):
        """Test that the trigger is reported as "trigger" and upstream nodes follow in order"""
        assert diamond.available_sources("D") == ["trigger", "A", "B", "C"]

    def test_available_sources_excludes_siblings(self, diamond):
        assert diamond.available_sources("B") == ["trigger", "A"]
        assert diamond.available_sources("T") == []

    def test_unreachable_nodes_excluded(self):
        nodes = [trigger(), action("a"), action("orphan")]
        graph = WorkflowGraph(make_workflow(nodes, [make_edge("t", "a")]))

        assert [n.id for n in graph.execution_order()] == ["t", "a"]

    def test_sibling_declaration_order(self):
        nodes = [trigger(), action("z"), action("y"), action("x")]
        edges = [make_edge("t", "z"), make_edge("t", "y"), make_edge("t", "x")]
        graph = WorkflowGraph(make_workflow(nodes, edges))

        assert [n.id for n in graph.execution_order()] == ["t", "z", "y", "x"]

    def test_predecessors(self, diamond):
        assert diamond.predecessors("D") == ["B", "C"]
        assert diamond.ancestors("D") == {"T", "A", "B", "C"}
        assert diamond.descendants("A") == {"B", "C", "D"}


class TestConditionBranches:

    @pytest.fixture
    def branching(self):
        """
        t -> c; c -true-> yes -> after_yes; c -false-> no; yes -> merge; no -> merge
        """
        nodes = [
            trigger(),
            make_node("c", "condition", expression="true"),
            action("yes"),
            action("after_yes"),
            action("no"),
            action("merge"),
        ]
        edges = [
            make_edge("t", "c"),
            make_edge("c", "yes", "true"),
            make_edge("c", "no", "false"),
            make_edge("yes", "after_yes"),
            make_edge("yes", "merge"),
            make_edge("no", "merge"),
        ]
        return WorkflowGraph(make_workflow(nodes, edges))

    def test_branch_targets(self, branching):
        assert branching.branch_targets("c", True) == ["yes"]
        assert branching.branch_targets("c", False) == ["no"]

    def test_false_skips_true_only_nodes(self, branching):
        """Test that nodes reachable only via the true edge are skipped"""
        assert branching.nodes_to_skip("c", False) == {"yes", "after_yes"}

    def test_true_skips_false_only_nodes(self, branching):
        """Test that a merge node reachable from the chosen branch is kept"""
        assert branching.nodes_to_skip("c", True) == {"no"}

    def test_unlabelled_edges_are_default(self):
        nodes = [trigger(), make_node("c", "condition", expression="true"), action("a")]
        graph = WorkflowGraph(make_workflow(nodes, [make_edge("t", "c"), make_edge("c", "a")]))

        assert graph.branch_targets("c", False) == ["a"]
        assert graph.nodes_to_skip("c", False) == set()

    def test_node_with_bypass_path_is_not_skipped(self):
        """Test that a node also linked from upstream of the condition still runs"""
        nodes = [
            trigger(),
            make_node("check", "condition", expression="false"),
            action("audit"),
            action("notify"),
        ]
        edges = [
            make_edge("t", "check"),
            make_edge("t", "audit"),
            make_edge("check", "audit", "true"),
            make_edge("check", "notify", "true"),
        ]
        graph = WorkflowGraph(make_workflow(nodes, edges))

        assert graph.nodes_to_skip("check", False) == {"notify"}
        assert graph.nodes_to_skip("check", True) == set()
