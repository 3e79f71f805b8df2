"""
Suite hierarchy resolution over a flat list of suites linked by parent ids.

Suites are plain dicts carrying at least ``id``, ``title`` and ``parent_suite_id``
(see ``collection.utils.normalize_suite``). Nothing here performs I/O or mutates
its input. Every traversal goes through ``walk`` which never revisits an id, so
cyclic parent links terminate with a partial result.
"""
import logging
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Set

logger = logging.getLogger(__name__)

DEFAULT_SEPARATOR = ' > '

Suite = Dict[str, Any]


def suite_name(suite: Suite) -> str:
    """Display name of a suite, falling back to ``Suite {id}``."""
    return suite.get('title') or suite.get('name') or f"Suite {suite.get('id')}"


def index_suites(suites: Iterable[Suite]) -> Dict[int, Suite]:
    """Map suite id to suite. The first occurrence of a repeated id wins."""
    index = {}
    for suite in suites:
        suite_id = suite.get('id')
        if suite_id is not None and suite_id not in index:
            index[suite_id] = suite
    return index


def index_children(suites: Iterable[Suite]) -> Dict[int, List[Suite]]:
    """Map parent id to its direct children, in input order."""
    children = {}
    for suite in suites:
        parent_id = suite.get('parent_suite_id')
        if parent_id is not None:
            children.setdefault(parent_id, []).append(suite)
    return children


def walk(start: Suite, neighbours: Callable[[Suite], Iterable[Suite]]) -> Iterator[Suite]:
    """
    Depth-first pre-order walk from ``start``, following ``neighbours``.
    
    Each suite id is yielded at most once; a neighbour already seen is skipped,
    which is what makes cyclic data terminate.
    """
    visited: Set[int] = set()
    stack = [start]
    while stack:
        suite = stack.pop()
        suite_id = suite.get('id')
        if suite_id in visited:
            continue
        visited.add(suite_id)
        yield suite
        stack.extend(reversed([n for n in neighbours(suite) if n.get('id') not in visited]))


def _parent_of(index: Dict[int, Suite]) -> Callable[[Suite], List[Suite]]:
    def parent(suite: Suite) -> List[Suite]:
        parent_id = suite.get('parent_suite_id')
        if parent_id is not None and parent_id in index:
            return [index[parent_id]]
        return []
    return parent


def lineage(suite_id: int, index: Dict[int, Suite]) -> List[Suite]:
    """Suites from ``suite_id`` up to its top-most reachable ancestor (self first)."""
    if suite_id not in index:
        return []
    return list(walk(index[suite_id], _parent_of(index)))


def is_orphan(suite: Suite, index: Dict[int, Suite]) -> bool:
    """True when the suite names a parent that is not in the set."""
    parent_id = suite.get('parent_suite_id')
    return parent_id is not None and parent_id not in index


def root_ids(suites: List[Suite]) -> Set[int]:
    """Ids of suites with no parent or with a parent id absent from the set."""
    index = index_suites(suites)
    return {
        suite['id'] for suite in suites
        if suite.get('parent_suite_id') is None or suite['parent_suite_id'] not in index
    }


def build_tree(suites: List[Suite]) -> List[Suite]:
    """
    Build a forest from a flat suite list.
    
    Each returned node is a copy of the input suite with a ``children`` list.
    Suites whose parent is missing become roots. Suites caught in a parent
    cycle are promoted to roots in input order so that every input suite
    appears exactly once in the forest.
    """
    nodes = [dict(suite, children=[]) for suite in suites]
    by_id = {}
    for node in nodes:
        by_id.setdefault(node.get('id'), node)

    roots = []
    parent_of = {}
    for node in nodes:
        parent_id = node.get('parent_suite_id')
        parent = by_id.get(parent_id) if parent_id is not None else None
        if parent is not None and parent is not node:
            parent['children'].append(node)
            parent_of[id(node)] = parent
        else:
            roots.append(node)

    reached = set()

    def mark(root):
        stack = [root]
        while stack:
            node = stack.pop()
            if id(node) in reached:
                continue
            reached.add(id(node))
            stack.extend(node['children'])

    for root in roots:
        mark(root)

    for node in nodes:
        if id(node) in reached:
            continue
        parent = parent_of.pop(id(node))
        parent['children'] = [child for child in parent['children'] if child is not node]
        logger.warning(f"Suite {node.get('id')} is part of a parent cycle; treating it as a root")
        roots.append(node)
        mark(node)

    return roots


def flatten_tree(roots: List[Suite]) -> List[Suite]:
    """Flatten a forest back into a depth-first pre-order list."""
    flattened = []
    for root in roots:
        flattened.extend(walk(root, lambda node: node.get('children') or []))
    return flattened


def level_of(suite_id: int, suites: List[Suite]) -> int:
    """Depth of a suite: 0 for roots, unknown suites and suites closing a cycle."""
    chain = lineage(suite_id, index_suites(suites))
    return max(len(chain) - 1, 0)


def root_id_of(suite_id: int, suites: List[Suite]) -> Optional[int]:
    """
    Id of the root above ``suite_id``.
    
    Returns the suite's own id when it is a root and ``None`` when the suite is
    not in the set at all.
    """
    chain = lineage(suite_id, index_suites(suites))
    return chain[-1]['id'] if chain else None


def path_of(suite_id: int, suites: List[Suite], separator: str = DEFAULT_SEPARATOR) -> str:
    """Titles from the root down to ``suite_id`` joined by ``separator``."""
    chain = lineage(suite_id, index_suites(suites))
    if not chain:
        return f"Unknown Suite ({suite_id})"
    return separator.join(suite_name(suite) for suite in reversed(chain))


def ancestors_of(suite_id: int, suites: List[Suite]) -> List[Suite]:
    """Ancestors of a suite ordered root first, excluding the suite itself."""
    chain = lineage(suite_id, index_suites(suites))
    return list(reversed(chain[1:]))


def descendants_of(suite_id: int, suites: List[Suite]) -> List[Suite]:
    """Every suite below ``suite_id``, depth-first pre-order."""
    index = index_suites(suites)
    if suite_id not in index:
        return []
    children = index_children(index.values())
    found = walk(index[suite_id], lambda suite: children.get(suite['id'], []))
    next(found)
    return list(found)


def enrich(suites: List[Suite], separator: str = DEFAULT_SEPARATOR) -> List[Suite]:
    """
    Annotate every suite with its derived hierarchy fields.
    
    Adds ``level``, ``root_suite_id``, ``root_suite_name``, ``path``,
    ``parent_suite_name`` and ``orphaned`` to a copy of each suite; original
    fields are left untouched.
    """
    index = index_suites(suites)
    parent = _parent_of(index)
    enriched = []
    for suite in suites:
        chain = list(walk(suite, parent))
        root = chain[-1]
        parent_suite = index.get(suite.get('parent_suite_id'))
        enriched.append(dict(
            suite,
            level=len(chain) - 1,
            root_suite_id=root.get('id'),
            root_suite_name=suite_name(root),
            path=separator.join(suite_name(s) for s in reversed(chain)),
            parent_suite_name=suite_name(parent_suite) if parent_suite else None,
            orphaned=is_orphan(suite, index),
        ))
    return enriched


def root_id_map(suites: List[Suite]) -> Dict[int, int]:
    """Map every suite id in the set to its root suite id."""
    index = index_suites(suites)
    parent = _parent_of(index)
    return {suite_id: list(walk(suite, parent))[-1]['id'] for suite_id, suite in index.items()}
