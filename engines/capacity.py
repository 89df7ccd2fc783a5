"""
Capacity Planner — Capacity Columns
Expected / validated / difference values per node, org totals, and the flat
row model the planning table renders from.
"""
from engines.hierarchy import (
    flatten_tree, rolled_up_headcount, rolled_up_validated_capacity,
)
from engines.roles import build_subtitle

CAPACITY_PER_HC = 1000
LY_CAPACITY_PER_HC = 800

OPTIONAL_COLUMNS = ('LY Headcount (IC)', 'LY AE Capacity')


def _rate(params, key, default):
    return (params or {}).get(key, default)


def expected_capacity(node, params=None):
    """headcount × capacityPerHC. Never stored on the node."""
    return node['headcount'] * _rate(params, 'capacityPerHC', CAPACITY_PER_HC)


def ly_ae_capacity(node, params=None):
    # LY column uses the rolled-up headcount at the LY rate, not expected capacity
    return rolled_up_headcount(node) * _rate(params, 'lyCapacityPerHC', LY_CAPACITY_PER_HC)


def validated_capacity(node):
    """Own value on leaves, rolled up everywhere else."""
    return rolled_up_validated_capacity(node)


def capacity_difference(node, params=None):
    """Validated − expected; None when nothing has been validated under the node."""
    validated = validated_capacity(node)
    if validated is None:
        return None
    return validated - expected_capacity(node, params)


def format_currency(value):
    if value is None:
        return '—'
    if value < 0:
        return f"-${-value:,}"
    return f"${value:,}"


def get_totals(root, params=None):
    if root is None:
        return {'totalRows': 0, 'targetCapacity': 0, 'headcount': 0,
                'expectedCapacity': 0, 'validatedCapacity': None, 'difference': None}
    return {
        'totalRows': len(flatten_tree(root)),
        'targetCapacity': root.get('targetCapacity', 0),
        'headcount': rolled_up_headcount(root),
        'expectedCapacity': expected_capacity(root, params),
        'validatedCapacity': validated_capacity(root),
        'difference': capacity_difference(root, params),
    }


def build_rows(root, params=None, columns=()):
    """
    Flatten the tree into display rows (pre-order), one per node.

    Args:
        root: org tree from build_tree / an update
        params: planner params (capacity rates)
        columns: optional column names from OPTIONAL_COLUMNS to include

    Returns:
        list of row dicts; optional columns appear under 'extra'
    """
    rows = []
    for node in flatten_tree(root):
        has_children = bool(node.get('children'))
        validated = validated_capacity(node)
        row = {
            'id': node['id'], 'rowNumber': node.get('rowNumber'),
            'name': node.get('name', ''), 'personName': node.get('personName', ''),
            'role': node['role'], 'depth': node['depth'],
            'subtitle': build_subtitle(node),
            'segments': list(node.get('segments') or []),
            'status': node.get('status'),
            'hasChildren': has_children,
            'targetCapacity': node.get('targetCapacity', 0),
            'headcount': node['headcount'],
            'expectedCapacity': expected_capacity(node, params),
            'validatedCapacity': validated,
            'validatedDisplay': format_currency(validated),
            'difference': capacity_difference(node, params),
            'editable': {
                'targetCapacity': True,
                'headcount': not has_children,
                'validatedCapacity': not has_children,
            },
            'extra': {},
        }
        if 'LY Headcount (IC)' in columns:
            row['extra']['LY Headcount (IC)'] = rolled_up_headcount(node)
        if 'LY AE Capacity' in columns:
            row['extra']['LY AE Capacity'] = ly_ae_capacity(node, params)
        rows.append(row)
    return rows


def initial_expanded_ids(root, max_depth=3):
    """Ids expanded on first render: everything above max_depth."""
    return {n['id'] for n in flatten_tree(root) if n['depth'] < max_depth}
