"""
Capacity Planner — Territory Optimisation
Splits the territory unit pool and TAM across AE-owned territories in
proportion to each owner's validated capacity.
"""
import logging

from engines.allocation import allocate_proportional
from engines.roles import LEAF_ROLE

UNASSIGNED_ID = 'unassigned'

DEFAULT_TERRITORIES = [
    {'id': 't1', 'name': 'US_AERO 1', 'owner': 'AE1', 'region': 'US', 'units': None, 'tam': None},
    {'id': 't2', 'name': 'US_AERO 2', 'owner': 'AE2', 'region': 'US', 'units': None, 'tam': None},
    {'id': 't5', 'name': 'CAN_AERO 1', 'owner': 'AE5', 'region': 'CAN', 'units': None, 'tam': None},
    {'id': 't6', 'name': 'CAN_AERO 2', 'owner': 'AE6', 'region': 'CAN', 'units': None, 'tam': None},
    {'id': UNASSIGNED_ID, 'name': 'Unassigned', 'owner': '', 'region': '', 'units': 1000, 'tam': 12000},
]


def flatten_aes(root):
    """AE name -> {'validatedCapacity', 'reportingTo'} for every AE in the org."""
    aes = {}

    def _walk(node, parent):
        if node.get('role') == LEAF_ROLE:
            label = ''
            if parent is not None:
                label = parent.get('name', '')
                if parent.get('personName'):
                    label += f" - {parent['personName']}"
            aes[node.get('name')] = {
                'validatedCapacity': node.get('validatedCapacity'),
                'reportingTo': label,
            }
        for child in node.get('children') or ():
            _walk(child, node)

    if root is not None:
        _walk(root, None)
    return aes


def _unassigned_id(params):
    return (params or {}).get('unassignedTerritoryId', UNASSIGNED_ID)


def optimize_territories(territories, org_root, params=None):
    """
    Allocate territoryUnits and territoryTam across the owned territories.

    Weight of a territory = its owner's validated capacity (unset counts as 0).
    The unassigned row is left out of the weighting and ends at 0 / 0.

    Returns:
        {'optimized': bool, 'reason': str|None, 'territories': rows,
         'allocation': allocate_proportional result}
        When allocation is impossible the input rows come back unchanged.
    """
    params = params or {}
    unassigned = _unassigned_id(params)
    aes = flatten_aes(org_root)
    entities = []
    for row in territories:
        info = aes.get(row.get('owner'))
        weight = info['validatedCapacity'] if info else None
        entities.append({'entityKey': row['id'], 'weight': weight})

    result = allocate_proportional(
        entities,
        params.get('territoryUnits', 1000),
        params.get('territoryTam', 12000),
        excluded=(unassigned,),
    )
    if not result['allocated']:
        logging.warning(f"optimize_territories: skipped ({result['reason']})")
        return {'optimized': False, 'reason': result['reason'],
                'territories': territories, 'allocation': result}

    updated = []
    for i, row in enumerate(territories):
        updated.append(dict(row, units=result['units'][i], tam=result['budget'][i]))
    logging.info(f"optimize_territories: {len(updated)} territories, total weight {result['totalWeight']:,}")
    return {'optimized': True, 'reason': None, 'territories': updated, 'allocation': result}


def territory_totals(territories, org_root, params=None):
    unassigned = _unassigned_id(params)
    aes = flatten_aes(org_root)
    owned = [t for t in territories if t['id'] != unassigned]
    owner_caps = [aes.get(t.get('owner'), {}).get('validatedCapacity') for t in owned]
    return {
        'totalTerritories': len(owned),
        'totalUnits': sum(t.get('units') or 0 for t in territories),
        'totalTam': sum(t.get('tam') or 0 for t in territories),
        'totalValidatedCapacity': sum(v for v in owner_caps if v is not None),
        'hasAnyValidated': any(v is not None for v in owner_caps),
        'owners': {t['id']: aes.get(t.get('owner'), {}).get('reportingTo', '') for t in owned},
    }
