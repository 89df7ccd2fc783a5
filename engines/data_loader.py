"""
Capacity Planner — Data Loader
Reads the planner workbooks (org hierarchy, territories, parameters) and
turns them into the structures the engines work on.
Missing workbooks fall back to the built-in demo org and territory table.
"""
import os
import logging
import openpyxl

from engines.hierarchy import HierarchyError, build_tree
from engines.roles import ALL_ROLE_FIELDS
from engines.territory import DEFAULT_TERRITORIES

DATA_DIR = os.environ.get(
    'CAPACITY_PLANNER_DATA_DIR',
    os.path.join(os.path.dirname(os.path.dirname(__file__)), 'data'),
)

# ── Workbook column -> node key ──
HIERARCHY_COLUMNS = {
    'ID': 'id', 'Row': 'rowNumber', 'Name': 'name', 'Person Name': 'personName',
    'Role': 'role', 'Headcount': 'headcount', 'Target Capacity': 'targetCapacity',
    'Validated Capacity': 'validatedCapacity', 'Status': 'status',
    'Avatar Color': 'avatarColor', 'Avatar Initials': 'avatarInitials',
    'Direct Reports': 'directReports',
    'Rep Type': 'repType', 'Industry': 'industry', 'Start Date': 'startDate',
    'Allocated HC': 'allocatedHC', 'Validated Veterans': 'validatedVeterans',
    'Validated TBH': 'validatedTBH', 'Total HC': 'totalHC',
}
INT_FIELDS = ('rowNumber', 'headcount', 'directReports', 'allocatedHC',
              'validatedVeterans', 'validatedTBH', 'totalHC')
TERRITORY_COLUMNS = {'ID': 'id', 'Name': 'name', 'Owner': 'owner', 'Region': 'region',
                     'Units': 'units', 'TAM': 'tam'}


def read_xlsx_sheet(filepath, sheet_name=None):
    wb = openpyxl.load_workbook(filepath, read_only=True, data_only=True)
    try:
        ws = wb[sheet_name] if sheet_name else wb.active
        rows = list(ws.iter_rows(values_only=True))
    finally:
        wb.close()
    if len(rows) < 2:
        return []
    headers = [str(h).strip() if h else f'col_{i}' for i, h in enumerate(rows[0])]
    pad = (None,) * len(headers)
    return [dict(zip(headers, tuple(row) + pad)) for row in rows[1:] if any(v is not None for v in row)]


def _default_params():
    return {
        'planName': '2024 Field Sales', 'currency': 'USD',
        'capacityPerHC': 1000, 'lyCapacityPerHC': 800,
        'territoryUnits': 1000, 'territoryTam': 12000,
        'unassignedTerritoryId': 'unassigned',
    }


def load_parameters(data_dir=None):
    """Parameters from config/parameters.xlsx (Parameter / Value rows) over the defaults."""
    path = os.path.join(data_dir or DATA_DIR, 'config', 'parameters.xlsx')
    p = _default_params()
    if not os.path.exists(path):
        return p
    param_map = {
        'Plan Name': 'planName', 'Currency': 'currency',
        'Capacity per HC': 'capacityPerHC', 'LY Capacity per HC': 'lyCapacityPerHC',
        'Territory Units': 'territoryUnits', 'Territory TAM': 'territoryTam',
        'Unassigned Territory ID': 'unassignedTerritoryId',
    }
    for row in read_xlsx_sheet(path):
        key = str(row.get('Parameter', '')).strip()
        val = row.get('Value')
        if key not in param_map or val is None:
            continue
        mapped = param_map[key]
        if mapped in ('planName', 'currency', 'unassignedTerritoryId'):
            val = str(val).strip()
        else:
            try:
                val = float(val)
            except (TypeError, ValueError):
                logging.warning(f"load_parameters: '{key}' value {val!r} is not numeric — keeping default")
                continue
            if val.is_integer():
                val = int(val)
        p[mapped] = val
    return p


def _coerce(field, val):
    if isinstance(val, str):
        val = val.strip()
        if val == '':
            return None
    if field in INT_FIELDS and isinstance(val, float) and val.is_integer():
        return int(val)
    return val


def _node_from_row(row):
    node = {}
    for col, key in HIERARCHY_COLUMNS.items():
        val = _coerce(key, row.get(col))
        if val is None and key != 'validatedCapacity':
            continue
        node[key] = val
    if node.get('id') is not None:
        node['id'] = str(node['id'])
    segments = row.get('Segments')
    node['segments'] = [s.strip() for s in str(segments).split(',') if s.strip()] if segments else []
    node.setdefault('personName', '')
    node.setdefault('targetCapacity', 0)
    # role-specific columns left blank should not appear on other roles
    return {k: v for k, v in node.items() if k not in ALL_ROLE_FIELDS or v is not None}


def nest_rows(rows):
    """
    Nest flat (ID, Parent ID) rows into one nested dict.
    Exactly one row may have no parent. Raises HierarchyError on unknown
    parents, duplicate ids, several roots or rows unreachable from the root.
    """
    nodes = {}
    parents = {}
    order = []
    for row in rows:
        node = _node_from_row(row)
        nid = node.get('id')
        if nid is None:
            raise HierarchyError(f"row without ID: {row}")
        if nid in nodes:
            raise HierarchyError(f"duplicate node id '{nid}'")
        node['children'] = []
        nodes[nid] = node
        parent = row.get('Parent ID')
        parents[nid] = str(parent).strip() if parent not in (None, '') else None
        order.append(nid)

    roots = [nid for nid in order if parents[nid] is None]
    if len(roots) != 1:
        raise HierarchyError(f"expected exactly one root row, found {len(roots)}")
    for nid in order:
        pid = parents[nid]
        if pid is None:
            continue
        if pid not in nodes:
            raise HierarchyError(f"node '{nid}' references unknown parent '{pid}'")
        nodes[pid]['children'].append(nodes[nid])

    # cycles leave rows detached from the root
    reachable = set()
    stack = [nodes[roots[0]]]
    while stack:
        n = stack.pop()
        reachable.add(n['id'])
        stack.extend(n['children'])
    if len(reachable) != len(nodes):
        detached = sorted(set(nodes) - reachable)
        raise HierarchyError(f"rows not reachable from root (cycle?): {detached}")
    return nodes[roots[0]]


def load_hierarchy(path=None):
    """Org tree from raw/org_hierarchy.xlsx ('Org Hierarchy' sheet), else the demo org."""
    path = path or os.path.join(DATA_DIR, 'raw', 'org_hierarchy.xlsx')
    if not os.path.exists(path):
        logging.info(f"load_hierarchy: {path} not found — using demo org")
        return build_tree(demo_hierarchy())
    rows = read_xlsx_sheet(path, 'Org Hierarchy')
    if not rows:
        return None
    tree = build_tree(nest_rows(rows))
    logging.info(f"load_hierarchy: {len(rows)} nodes, root '{tree['id']}', headcount {tree['headcount']}")
    return tree


def load_territories(path=None):
    path = path or os.path.join(DATA_DIR, 'raw', 'territories.xlsx')
    if not os.path.exists(path):
        return [dict(t) for t in DEFAULT_TERRITORIES]
    territories = []
    for row in read_xlsx_sheet(path, 'Territories'):
        t = {key: _coerce(key, row.get(col)) for col, key in TERRITORY_COLUMNS.items()}
        if t['id'] is None:
            continue
        t['id'] = str(t['id'])
        t['owner'] = t['owner'] or ''
        t['region'] = t['region'] or ''
        for k in ('units', 'tam'):
            if isinstance(t[k], float) and t[k].is_integer():
                t[k] = int(t[k])
        territories.append(t)
    return territories


def run_etl(data_dir=None):
    """Load params, org tree and territory table."""
    base = data_dir or DATA_DIR
    params = load_parameters(base)
    org = load_hierarchy(os.path.join(base, 'raw', 'org_hierarchy.xlsx'))
    territories = load_territories(os.path.join(base, 'raw', 'territories.xlsx'))
    return {'params': params, 'org': org, 'territories': territories}


def _ae(n, row, vc, segment):
    return {'id': f'ae{n}', 'rowNumber': row, 'name': f'AE{n}', 'personName': '', 'role': 'AE',
            'avatarColor': '#9ca3af', 'targetCapacity': 0, 'headcount': 1,
            'validatedCapacity': vc, 'status': 'Not Started', 'segments': [segment]}


def demo_hierarchy():
    """Demo org: CRO → SVP → AVP → two RVPs with four AEs each."""
    return {
        'id': 'cro', 'rowNumber': 1, 'name': 'CRO', 'personName': 'Michael Reynolds', 'role': 'CRO',
        'avatarColor': '#2e2e2e', 'targetCapacity': 0, 'headcount': 8, 'validatedCapacity': None,
        'status': 'Cascaded',
        'children': [{
            'id': 'svp-amer', 'rowNumber': 2, 'name': 'SVP AMER', 'personName': 'Sarah Mitchell',
            'role': 'SVP', 'avatarColor': '#e0a030', 'targetCapacity': 0, 'headcount': 8,
            'validatedCapacity': None, 'status': 'Cascaded',
            'children': [{
                'id': 'amer-industries-avp', 'rowNumber': 3, 'name': 'AMER Industries AVP',
                'personName': 'James Carter', 'role': 'AVP', 'avatarColor': '#3b82f6',
                'segments': ['AERO', 'Manufacturing'], 'targetCapacity': 0, 'headcount': 8,
                'validatedCapacity': None, 'status': 'Drafting',
                'children': [
                    {'id': 'rvp-us', 'rowNumber': 4, 'name': 'RVP US', 'personName': 'Emily Thompson',
                     'role': 'RVP', 'avatarColor': '#22a06b', 'targetCapacity': 0, 'headcount': 4,
                     'validatedCapacity': None, 'status': 'Not Started',
                     'children': [_ae(1, 5, 1200, 'AERO'), _ae(2, 6, 1150, 'AERO'),
                                  _ae(3, 7, 1100, 'Manufacturing'), _ae(4, 8, 1050, 'Manufacturing')]},
                    {'id': 'rvp-canada', 'rowNumber': 9, 'name': 'RVP Canada', 'personName': 'David Patel',
                     'role': 'RVP', 'avatarColor': '#e0a030', 'targetCapacity': 0, 'headcount': 4,
                     'validatedCapacity': None, 'status': 'Not Started',
                     'children': [_ae(5, 10, 1200, 'AERO'), _ae(6, 11, 1150, 'AERO'),
                                  _ae(7, 12, 1100, 'Manufacturing'), _ae(8, 13, 1050, 'Manufacturing')]},
                ],
            }],
        }],
    }
