"""Parent/child process hierarchy built from a flat process list."""

from collections.abc import Callable, Collection, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from peep.models import ProcessSnapshot


@dataclass(slots=True)
class ProcessTreeNode:
    """A process and its direct children. ``expanded`` is view state only."""

    process: ProcessSnapshot
    children: list["ProcessTreeNode"] = field(default_factory=list)
    expanded: bool = True

    @property
    def pid(self) -> int:
        return self.process.pid


@dataclass(slots=True, frozen=True)
class ProcessForest:
    roots: list[ProcessTreeNode]
    lookup: dict[int, ProcessTreeNode]

    def __len__(self) -> int:
        return count_nodes(self.roots)


@dataclass(slots=True, frozen=True)
class TreeRow:
    """One visible row of a flattened forest."""

    node: ProcessTreeNode
    depth: int

    @property
    def process(self) -> ProcessSnapshot:
        return self.node.process


def _break_cycles(parents: list[int | None]) -> None:
    """
    Detach one member of every parent cycle so each chain ends at a root.

    The member detached is the one that comes first in the input, which
    makes the result independent of where the walk entered the cycle.
    """
    state = [0] * len(parents)  # 0 unseen, 1 on current walk, 2 resolved
    for start in range(len(parents)):
        walk: list[int] = []
        index = start
        while index is not None and state[index] == 0:
            state[index] = 1
            walk.append(index)
            index = parents[index]
        if index is not None and state[index] == 1:
            cycle = walk[walk.index(index):]
            parents[min(cycle)] = None
        for visited in walk:
            state[visited] = 2


def build_forest(
    processes: Sequence[ProcessSnapshot],
    collapsed: Collection[int] = (),
) -> ProcessForest:
    """
    Build a parent -> children forest from a flat process list.

    A process becomes a root when its ppid is 0, when no process with that
    pid exists (an orphan), or when it names itself as parent. When a pid
    appears more than once (process and thread entries), children attach to
    its first occurrence. Roots and children keep input order.

    Args:
        processes: Flat process list from one snapshot.
        collapsed: Pids whose nodes start collapsed.
    """
    nodes = [ProcessTreeNode(p, expanded=p.pid not in collapsed) for p in processes]

    lookup: dict[int, ProcessTreeNode] = {}
    position: dict[int, int] = {}
    for index, node in enumerate(nodes):
        if node.pid not in lookup:
            lookup[node.pid] = node
            position[node.pid] = index

    parents: list[int | None] = []
    for index, node in enumerate(nodes):
        ppid = node.process.ppid
        parent = position.get(ppid) if ppid != 0 else None
        parents.append(None if parent == index else parent)

    _break_cycles(parents)

    roots: list[ProcessTreeNode] = []
    for node, parent in zip(nodes, parents):
        if parent is None:
            roots.append(node)
        else:
            nodes[parent].children.append(node)

    return ProcessForest(roots=roots, lookup=lookup)


def iter_nodes(roots: Sequence[ProcessTreeNode]) -> Iterator[ProcessTreeNode]:
    """Depth-first walk over every node regardless of expansion."""
    stack = list(reversed(roots))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def count_nodes(roots: Sequence[ProcessTreeNode]) -> int:
    return sum(1 for _ in iter_nodes(roots))


def flatten_forest(
    roots: Sequence[ProcessTreeNode],
    sort_key: Callable[[ProcessSnapshot], Any] | None = None,
    descending: bool = True,
) -> list[TreeRow]:
    """
    Flatten a forest into display rows, depth first.

    Children of collapsed nodes are skipped. When ``sort_key`` is given,
    siblings are reordered among themselves (roots included); a node's
    subtree always follows it directly. Sorting is stable, and the forest
    itself is not modified.
    """

    def order(siblings: Sequence[ProcessTreeNode]) -> list[ProcessTreeNode]:
        if sort_key is None:
            return list(siblings)
        return sorted(siblings, key=lambda n: sort_key(n.process), reverse=descending)

    rows: list[TreeRow] = []
    stack: list[tuple[ProcessTreeNode, int]] = [(n, 0) for n in reversed(order(roots))]
    while stack:
        node, depth = stack.pop()
        rows.append(TreeRow(node=node, depth=depth))
        if node.expanded and node.children:
            stack.extend((child, depth + 1) for child in reversed(order(node.children)))
    return rows


def prune_forest(
    roots: Sequence[ProcessTreeNode],
    keep: Callable[[ProcessSnapshot], bool],
) -> list[ProcessTreeNode]:
    """
    Return a copy of the forest holding only matching nodes and their ancestors.

    Non-matching subtrees with no match below them are dropped. The input
    nodes are left untouched.
    """
    # Post-order without recursion; parent chains can be thousands deep
    copies: dict[int, ProcessTreeNode] = {}
    stack: list[tuple[ProcessTreeNode, bool]] = [(n, False) for n in reversed(roots)]
    while stack:
        node, children_done = stack.pop()
        if not children_done:
            stack.append((node, True))
            stack.extend((child, False) for child in reversed(node.children))
            continue
        children = [copies.pop(id(c)) for c in node.children if id(c) in copies]
        if children or keep(node.process):
            copies[id(node)] = ProcessTreeNode(
                node.process, children=children, expanded=node.expanded
            )
    return [copies[id(n)] for n in roots if id(n) in copies]
