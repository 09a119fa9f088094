from __future__ import annotations

from typing import Dict, Hashable, Iterable, List, Mapping, Sequence, Set, Tuple, TypeVar

N = TypeVar("N", bound=Hashable)


def children_of(nodes: Sequence[N], parents: Mapping[N, Set[N]]) -> Dict[N, List[N]]:
    """
    Invert a parent map. Children are listed in the order of `nodes`.
    """
    out: Dict[N, List[N]] = {n: [] for n in nodes}
    for n in nodes:
        for p in parents.get(n, set()):
            if p not in out:
                raise ValueError(f"Parent {p!s} of {n!s} is not a node of the graph")
            out[p].append(n)
    return out


def topological_order(nodes: Sequence[N], parents: Mapping[N, Set[N]]) -> List[N]:
    """
    Kahn topological sort. Nodes that become ready together are emitted by name.
    """
    nodes = list(nodes)
    parent_map: Dict[N, Set[N]] = {n: set(parents.get(n, set())) for n in nodes}

    out: List[N] = []
    done: Set[N] = set()
    ready = [n for n in nodes if not parent_map.get(n)]
    ready.sort(key=str)
    while ready:
        n = ready.pop(0)
        out.append(n)
        done.add(n)
        for m in nodes:
            if n in parent_map.get(m, set()):
                parent_map[m].remove(n)
                if not parent_map[m] and m not in done and m not in ready:
                    ready.append(m)
                    ready.sort(key=str)

    if len(out) != len(nodes):
        raise ValueError("Graph has at least one cycle")
    return out


def ancestors(start: Iterable[N], parents: Mapping[N, Set[N]]) -> Set[N]:
    """
    All proper ancestors of the start nodes (a start node is included only if it is
    an ancestor of another start node).
    """
    out: Set[N] = set()
    stack = [p for s in start for p in parents.get(s, set())]
    while stack:
        n = stack.pop()
        if n in out:
            continue
        out.add(n)
        stack.extend(parents.get(n, set()))
    return out


def descendants(start: Iterable[N], children: Mapping[N, Sequence[N]]) -> Set[N]:
    out: Set[N] = set()
    stack = [c for s in start for c in children.get(s, ())]
    while stack:
        n = stack.pop()
        if n in out:
            continue
        out.add(n)
        stack.extend(children.get(n, ()))
    return out


def markov_blanket(node: N, parents: Mapping[N, Set[N]], children: Mapping[N, Sequence[N]]) -> Set[N]:
    """
    Parents, children and the children's other parents of a node.
    """
    out: Set[N] = set(parents.get(node, set()))
    for c in children.get(node, ()):
        out.add(c)
        out.update(parents.get(c, set()))
    out.discard(node)
    return out


def dconnected(
    query: Iterable[N],
    evidence: Iterable[N],
    parents: Mapping[N, Set[N]],
    children: Mapping[N, Sequence[N]],
) -> Set[N]:
    """
    Nodes reachable from the query nodes along active trails given the evidence.

    Follows the reachability procedure of Koller and Friedman (2009, algorithm 3.1).
    A trail passing through an evidence node is blocked, unless the node is the
    collider of a v-structure; a collider is also opened by evidence on any of its
    descendants. Evidence nodes reached by a trail are included in the result, as
    are the query nodes themselves.
    """
    observed = set(evidence)

    # Phase I: evidence and its ancestors.
    opened = set(observed) | ancestors(observed, parents)

    # Phase II: walk (node, direction) pairs; "up" means arriving from a child.
    todo: List[Tuple[N, str]] = [(q, "up") for q in query]
    visited: Set[Tuple[N, str]] = set()
    reached: Set[N] = set()
    while todo:
        node, direction = todo.pop(0)
        if (node, direction) in visited:
            continue
        visited.add((node, direction))
        reached.add(node)
        if direction == "up" and node not in observed:
            todo.extend((p, "up") for p in parents.get(node, set()))
            todo.extend((c, "down") for c in children.get(node, ()))
        elif direction == "down":
            if node not in observed:
                todo.extend((c, "down") for c in children.get(node, ()))
            if node in opened:
                todo.extend((p, "up") for p in parents.get(node, set()))
    return reached
