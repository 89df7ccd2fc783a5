"""
Capacity Planner — Hierarchy Engine
Builds the org tree, answers rollup queries and applies point edits.

Nodes are plain dicts. Every edit returns a new root: only the dicts on the
root → edited-node path are rebuilt, all other subtrees are shared with the
previous snapshot, so a root handed out earlier never changes.
"""
import copy
import logging
import math

from engines.roles import ROLES, ROLE_FIELDS, ALL_ROLE_FIELDS

# Stored copies of these are dropped on construction; they are computed at query time
DERIVED_FIELDS = ('expectedCapacity', 'difference')
# Fields an updater may not touch; headcount has its own entry point
LOCKED_FIELDS = ('id', 'role', 'children', 'depth', 'headcount')


class HierarchyError(ValueError):
    """Construction input that cannot form a valid org tree."""


def _is_number(v):
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def _valid_headcount(v):
    return _is_number(v) and v >= 0 and float(v).is_integer()


def _valid_capacity(v):
    return v is None or (_is_number(v) and v >= 0)


# ══════════════════════════════════════════════════════════════
#  CONSTRUCTION
# ══════════════════════════════════════════════════════════════

def build_tree(raw):
    """
    Build a normalised org tree from a nested dict (loader output or static data).

    - ids must be unique, roles must come from the role registry
    - depth is assigned from the root (0)
    - leaf headcount must be a non-negative integer; internal headcount is
      recomputed from children, whatever the source said
    - validatedCapacity is kept on leaves and cleared on internal nodes
    - stored expectedCapacity / difference and fields that belong to another
      role are dropped

    The input is not modified. Raises HierarchyError on malformed input.
    """
    if raw is None:
        return None
    seen = set()

    def _build(src, depth):
        node_id = src.get('id')
        if node_id is None or node_id == '':
            raise HierarchyError(f"node at depth {depth} has no id")
        if node_id in seen:
            raise HierarchyError(f"duplicate node id '{node_id}'")
        seen.add(node_id)

        role = src.get('role')
        if role not in ROLES:
            raise HierarchyError(f"node '{node_id}': unknown role '{role}'")

        children = [_build(c, depth + 1) for c in (src.get('children') or [])]
        own_fields = ROLE_FIELDS[role]
        node = {k: v for k, v in src.items()
                if k not in DERIVED_FIELDS and k != 'children'
                and (k not in ALL_ROLE_FIELDS or k in own_fields)}

        target = src.get('targetCapacity', 0)
        if not _is_number(target):
            raise HierarchyError(f"node '{node_id}': invalid targetCapacity {target!r}")
        validated = src.get('validatedCapacity')
        if not _valid_capacity(validated):
            raise HierarchyError(f"node '{node_id}': invalid validatedCapacity {validated!r}")

        node['targetCapacity'] = target
        node['depth'] = depth
        node['children'] = children
        if children:
            rolled = sum(c['headcount'] for c in children)
            stored = src.get('headcount')
            if stored is not None and stored != rolled:
                logging.info(f"build_tree: '{node_id}' headcount {stored} replaced by rollup {rolled}")
            node['headcount'] = rolled
            node['validatedCapacity'] = None
        else:
            hc = src.get('headcount', 0)
            if not _valid_headcount(hc):
                raise HierarchyError(f"node '{node_id}': invalid headcount {hc!r}")
            node['headcount'] = int(hc)
            node['validatedCapacity'] = validated
        return node

    return _build(raw, 0)


def check_invariants(root):
    """Return a list of invariant violations (empty when the tree is consistent)."""
    problems = []
    if root is None:
        return problems
    seen = set()
    stack = [(root, None)]
    while stack:
        node, parent = stack.pop()
        nid = node.get('id')
        if nid in seen:
            problems.append(f"duplicate id '{nid}'")
        seen.add(nid)
        if parent is not None and node.get('depth') != parent.get('depth', 0) + 1:
            problems.append(f"'{nid}': depth {node.get('depth')} under parent depth {parent.get('depth')}")
        if not _valid_headcount(node.get('headcount')):
            problems.append(f"'{nid}': invalid headcount {node.get('headcount')!r}")
        children = node.get('children') or []
        if children:
            rolled = sum(c.get('headcount', 0) for c in children)
            if node.get('headcount') != rolled:
                problems.append(f"'{nid}': headcount {node.get('headcount')} != children sum {rolled}")
        stack.extend((c, node) for c in children)
    return problems


# ══════════════════════════════════════════════════════════════
#  LOOKUP
# ══════════════════════════════════════════════════════════════

def find_path(root, node_id):
    """Depth-first search. Returns [root, ..., node] or None."""
    if root is None:
        return None
    if root['id'] == node_id:
        return [root]
    for child in root.get('children') or ():
        path = find_path(child, node_id)
        if path is not None:
            return [root] + path
    return None


def find_node(root, node_id):
    path = find_path(root, node_id)
    return path[-1] if path else None


def find_parent(root, node_id):
    path = find_path(root, node_id)
    if not path or len(path) < 2:
        return None
    return path[-2]


def flatten_tree(node):
    """Pre-order list of every node."""
    if node is None:
        return []
    out = [node]
    for child in node.get('children') or ():
        out.extend(flatten_tree(child))
    return out


def iter_leaves(node):
    if node is None:
        return
    children = node.get('children')
    if not children:
        yield node
        return
    for child in children:
        yield from iter_leaves(child)


# ══════════════════════════════════════════════════════════════
#  ROLLUPS
# ══════════════════════════════════════════════════════════════

def rolled_up_headcount(node):
    """Leaf: own headcount. Internal: sum of children's rolled-up headcount."""
    children = node.get('children')
    if not children:
        return node.get('headcount', 0)
    return sum(rolled_up_headcount(c) for c in children)


def rolled_up_validated_capacity(node):
    """
    Leaf: own validatedCapacity (may be None).
    Internal: None only if every descendant leaf is None, otherwise the sum
    of the set values. 0 and None are different answers.
    """
    children = node.get('children')
    if not children:
        return node.get('validatedCapacity')
    total = 0
    has_any = False
    for child in children:
        val = rolled_up_validated_capacity(child)
        if val is not None:
            total += val
            has_any = True
    return total if has_any else None


ROLLUPS = {
    'headcount': rolled_up_headcount,
    'validatedCapacity': rolled_up_validated_capacity,
}


def roll_up(node, field):
    if field not in ROLLUPS:
        raise ValueError(f"no rollup defined for '{field}'")
    return ROLLUPS[field](node)


# ══════════════════════════════════════════════════════════════
#  EDITS
# ══════════════════════════════════════════════════════════════

def _rebuild_path(path, new_node, roll_headcount=False):
    """Copy every ancestor on the path, swapping in the replaced child."""
    current = new_node
    for i in range(len(path) - 2, -1, -1):
        parent = path[i]
        old_child = path[i + 1]
        children = [current if c is old_child else c for c in parent['children']]
        current = dict(parent, children=children)
        if roll_headcount:
            current['headcount'] = sum(c['headcount'] for c in children)
    return current


def _edit_problem(before, after):
    if not isinstance(after, dict):
        return 'updater did not return a node'
    for f in LOCKED_FIELDS:
        if f == 'children':
            if after.get('children') is not before.get('children'):
                return 'children cannot be replaced'
        elif after.get(f) != before.get(f):
            return f"'{f}' cannot be changed by a field update"
    for f in DERIVED_FIELDS:
        if f in after:
            return f"'{f}' is derived and cannot be stored"
    own_fields = ROLE_FIELDS.get(before.get('role'), ())
    for f in ALL_ROLE_FIELDS:
        if f in after and f not in own_fields:
            return f"'{f}' does not apply to role {before.get('role')}"
    if not _is_number(after.get('targetCapacity', 0)):
        return f"invalid targetCapacity {after.get('targetCapacity')!r}"
    validated = after.get('validatedCapacity')
    if not _valid_capacity(validated):
        return f"invalid validatedCapacity {validated!r}"
    if before.get('children') and validated is not None:
        return 'validatedCapacity is rolled up on internal nodes'
    return None


def update_node(root, node_id, updater):
    """
    Apply `updater` to one node and return the new root.

    `updater` gets a copy of the node (field values copied, `children` shared)
    and returns the replacement; it
    must leave rollup-bearing fields alone. Unknown ids and rejected updates
    return `root` itself (identity tells the caller nothing changed).
    """
    path = find_path(root, node_id)
    if path is None:
        logging.warning(f"update_node: node '{node_id}' not found — tree unchanged")
        return root
    target = path[-1]
    # children stay shared, every other value is copied
    updated = updater({k: v if k == 'children' else copy.deepcopy(v) for k, v in target.items()})
    problem = _edit_problem(target, updated)
    if problem:
        logging.warning(f"update_node: edit on '{node_id}' rejected: {problem}")
        return root
    return _rebuild_path(path, updated)


def set_node_field(root, node_id, field, value):
    """Edit a single non-rollup field (targetCapacity, leaf validatedCapacity, labels)."""
    return update_node(root, node_id, lambda n: dict(n, **{field: value}))


def update_headcount(root, node_id, new_headcount):
    """
    Set a leaf's headcount and recompute every ancestor on its path.

    Only the ancestor chain is rebuilt (O(depth)); siblings and cousins are
    shared untouched. Internal headcount is always the sum of children, so a
    direct edit on an internal node is rejected rather than silently
    overwritten; so are negative, fractional and non-numeric values.
    """
    if not _valid_headcount(new_headcount):
        logging.warning(f"update_headcount: invalid headcount {new_headcount!r} for '{node_id}' — tree unchanged")
        return root
    path = find_path(root, node_id)
    if path is None:
        logging.warning(f"update_headcount: node '{node_id}' not found — tree unchanged")
        return root
    target = path[-1]
    if target.get('children'):
        logging.warning(f"update_headcount: '{node_id}' has children; its headcount is derived — tree unchanged")
        return root
    return _rebuild_path(path, dict(target, headcount=int(new_headcount)), roll_headcount=True)


def recompute_headcounts(node):
    """Full bottom-up pass; internal nodes are rebuilt, leaves are shared."""
    if node is None:
        return None
    children = node.get('children')
    if not children:
        return node
    new_children = [recompute_headcounts(c) for c in children]
    return dict(node, children=new_children, headcount=sum(c['headcount'] for c in new_children))


def apply_edit(root, node_id, field, value):
    """Route a (nodeId, field, value) edit from the table to the right operation."""
    if field == 'headcount':
        return update_headcount(root, node_id, value)
    return set_node_field(root, node_id, field, value)
