# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow Graph

Structural validation and traversal order for a WorkflowDefinition.

Nodes and edges are stored in flat lists; adjacency is kept as lists of
indices into those lists. The execution order is a depth-first reverse
post-order from the trigger, so every node comes after all of its
reachable predecessors and siblings keep their edge-declaration order.
The same order drives both execution and the editor's "available data"
listing.
"""

from collections import deque
from typing import Dict, List, Optional, Set

from .models import Edge, Node, NodeType, WorkflowDefinition
from .exceptions import WorkflowStructureError

TRIGGER_KEY = "trigger"
TRUE_HANDLE = "true"
FALSE_HANDLE = "false"


class WorkflowGraph:
    """
    Validated, index-based view of a workflow definition.

    Raises WorkflowStructureError on construction if the definition is
    structurally invalid.
    """

    def __init__(self, definition: WorkflowDefinition):
        self.definition = definition
        self.nodes: List[Node] = list(definition.nodes)
        self.edges: List[Edge] = list(definition.edges)
        self._index: Dict[str, int] = {}
        self._out_edges: List[List[int]] = []
        self._in_edges: List[List[int]] = []
        self._trigger: int = -1
        self._order: List[int] = []

        self._validate()
        self._order = self._compute_order()

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def _validate(self) -> None:
        # 1. Empty workflow check
        if not self.nodes:
            raise WorkflowStructureError("Workflow must have at least one node", field="nodes")

        # 2. Duplicate node IDs
        for idx, node in enumerate(self.nodes):
            if node.id in self._index:
                raise WorkflowStructureError(f"Duplicate node ID found: {node.id}", field="nodes")
            self._index[node.id] = idx

        self._out_edges = [[] for _ in self.nodes]
        self._in_edges = [[] for _ in self.nodes]

        # 3. Edge references and self-loops
        for edge_idx, edge in enumerate(self.edges):
            for endpoint in (edge.source, edge.target):
                if endpoint not in self._index:
                    raise WorkflowStructureError(
                        f"Edge references non-existent node: {endpoint}",
                        field="edges"
                    )
            if edge.source == edge.target:
                raise WorkflowStructureError(
                    f"Self-loop not allowed: {edge.source} -> {edge.target}",
                    field="edges"
                )
            self._out_edges[self._index[edge.source]].append(edge_idx)
            self._in_edges[self._index[edge.target]].append(edge_idx)

        # 4. Exactly one trigger, with no incoming edges
        triggers = [idx for idx, node in enumerate(self.nodes) if node.type.is_trigger]
        if len(triggers) != 1:
            raise WorkflowStructureError(
                f"Workflow must have exactly one trigger node, found {len(triggers)}",
                field="nodes"
            )
        self._trigger = triggers[0]
        if self._in_edges[self._trigger]:
            raise WorkflowStructureError(
                f"Trigger node {self.nodes[self._trigger].id} cannot have incoming edges",
                field="edges"
            )

        # 5. Condition nodes: at most one outgoing edge per handle value
        for idx, node in enumerate(self.nodes):
            if node.type != NodeType.CONDITION:
                continue
            seen: Set[Optional[str]] = set()
            for edge_idx in self._out_edges[idx]:
                handle = self.edges[edge_idx].source_handle
                if handle in seen:
                    raise WorkflowStructureError(
                        f"Condition node {node.id} has more than one outgoing edge for handle {handle!r}",
                        field="edges"
                    )
                seen.add(handle)

        # 6. DAG check
        self._check_acyclic()

    def _check_acyclic(self) -> None:
        """Kahn's algorithm over the whole graph, condition edges included."""
        in_degree = [len(incoming) for incoming in self._in_edges]
        queue = deque(idx for idx, degree in enumerate(in_degree) if degree == 0)
        processed = 0

        while queue:
            idx = queue.popleft()
            processed += 1
            for edge_idx in self._out_edges[idx]:
                target = self._index[self.edges[edge_idx].target]
                in_degree[target] -= 1
                if in_degree[target] == 0:
                    queue.append(target)

        if processed != len(self.nodes):
            cyclic = sorted(self.nodes[idx].id for idx, degree in enumerate(in_degree) if degree > 0)
            raise WorkflowStructureError(
                f"Cycle detected in workflow graph involving nodes: {cyclic}",
                field="edges"
            )

    # =========================================================================
    # ORDERING
    # =========================================================================

    def _children(self, idx: int) -> List[int]:
        return [self._index[self.edges[e].target] for e in self._out_edges[idx]]

    def _compute_order(self) -> List[int]:
        """Reverse post-order DFS from the trigger (iterative)."""
        visited: Set[int] = set()
        post: List[int] = []
        # Children pushed in reverse so that the first declared child is finished last
        stack = [(self._trigger, iter(reversed(self._children(self._trigger))))]
        visited.add(self._trigger)

        while stack:
            idx, children = stack[-1]
            advanced = False
            for child in children:
                if child not in visited:
                    visited.add(child)
                    stack.append((child, iter(reversed(self._children(child)))))
                    advanced = True
                    break
            if not advanced:
                stack.pop()
                post.append(idx)

        post.reverse()
        return post

    @property
    def trigger(self) -> Node:
        return self.nodes[self._trigger]

    def get_node(self, node_id: str) -> Node:
        return self.nodes[self._index[node_id]]

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._index

    def execution_order(self) -> List[Node]:
        """Nodes reachable from the trigger, trigger first."""
        return [self.nodes[idx] for idx in self._order]

    def predecessors(self, node_id: str) -> List[str]:
        """Direct parents in edge-declaration order"""
        return [self.edges[e].source for e in self._in_edges[self._index[node_id]]]

    def ancestors(self, node_id: str) -> Set[str]:
        seen: Set[str] = set()
        queue = deque(self.predecessors(node_id))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(self.predecessors(current))
        return seen

    def descendants(self, node_id: str) -> Set[str]:
        seen: Set[str] = set()
        queue = deque(self.nodes[c].id for c in self._children(self._index[node_id]))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(self.nodes[c].id for c in self._children(self._index[current]))
        return seen

    def available_sources(self, node_id: str) -> List[str]:
        """
        Upstream sources whose output is in scope for node_id.

        Ordered by execution order; the trigger is reported as "trigger".
        """
        upstream = self.ancestors(node_id)
        trigger_id = self.trigger.id
        sources = []
        for idx in self._order:
            candidate = self.nodes[idx].id
            if candidate in upstream:
                sources.append(TRIGGER_KEY if candidate == trigger_id else candidate)
        return sources

    # =========================================================================
    # BRANCHING
    # =========================================================================

    def _edges_by_handle(self, node_id: str) -> Dict[str, List[int]]:
        grouped: Dict[str, List[int]] = {TRUE_HANDLE: [], FALSE_HANDLE: [], "default": []}
        for edge_idx in self._out_edges[self._index[node_id]]:
            edge = self.edges[edge_idx]
            handle = edge.source_handle if edge.source_handle in (TRUE_HANDLE, FALSE_HANDLE) else "default"
            grouped[handle].append(edge_idx)
        return grouped

    def branch_targets(self, condition_id: str, result: bool) -> List[str]:
        """Targets taken for a condition result; falls back to unlabelled edges."""
        grouped = self._edges_by_handle(condition_id)
        chosen = grouped[TRUE_HANDLE if result else FALSE_HANDLE] or grouped["default"]
        return [self.edges[edge_idx].target for edge_idx in chosen]

    def _reachable_without(self, excluded_edges: Set[int]) -> Set[str]:
        """Node ids reachable from the trigger when excluded_edges are cut"""
        seen: Set[int] = {self._trigger}
        queue = deque([self._trigger])
        while queue:
            idx = queue.popleft()
            for edge_idx in self._out_edges[idx]:
                if edge_idx in excluded_edges:
                    continue
                target = self._index[self.edges[edge_idx].target]
                if target not in seen:
                    seen.add(target)
                    queue.append(target)
        return {self.nodes[idx].id for idx in seen}

    def nodes_to_skip(self, condition_id: str, result: bool) -> Set[str]:
        """
        Nodes reachable from the trigger only through the branch not taken.

        A node that also has a path avoiding the rejected edge (a merge
        after the chosen branch, or a direct link from upstream) still runs.
        """
        grouped = self._edges_by_handle(condition_id)
        rejected = grouped[FALSE_HANDLE if result else TRUE_HANDLE]
        if not rejected:
            return set()

        skipped: Set[str] = set()
        for edge_idx in rejected:
            target = self.edges[edge_idx].target
            skipped.add(target)
            skipped |= self.descendants(target)

        return skipped - self._reachable_without(set(rejected))
