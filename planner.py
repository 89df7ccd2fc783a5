"""
Capacity Planner — Planning Pipeline
Chains loader → hierarchy → capacity columns → territory totals, and re-runs
the downstream steps after every org edit or territory optimisation.

State is a plain dict. Each call returns a new state; the previous one stays
valid, which is how a caller keeps "before" and "after" snapshots.
"""
import logging
import sys

from engines.capacity import build_rows, format_currency, get_totals
from engines.data_loader import run_etl
from engines.hierarchy import apply_edit
from engines.territory import optimize_territories, territory_totals


def _derive(params, org, territories, columns=(), **extra):
    state = {
        'params': params, 'org': org, 'territories': territories,
        'columns': tuple(columns),
        'rows': build_rows(org, params, columns),
        'totals': get_totals(org, params),
        'territoryTotals': territory_totals(territories, org, params),
        'optimized': False, 'lastEdit': None,
    }
    state.update(extra)
    return state


def run_all(data_dir=None, columns=()):
    """Full load from the workbooks (or the demo data) plus all derived views."""
    data = run_etl(data_dir)
    return _derive(data['params'], data['org'], data['territories'], columns)


def apply_org_edit(state, node_id, field, value):
    """
    Apply one (nodeId, field, value) edit and recompute everything downstream.

    'lastEdit' records whether the tree actually changed; an unknown id or a
    rejected value leaves the org snapshot as it was.
    """
    org = apply_edit(state['org'], node_id, field, value)
    changed = org is not state['org']
    return _derive(state['params'], org, state['territories'], state.get('columns', ()),
                   optimized=state.get('optimized', False),
                   lastEdit={'nodeId': node_id, 'field': field, 'value': value, 'applied': changed})


def set_columns(state, columns):
    return _derive(state['params'], state['org'], state['territories'], columns,
                   optimized=state.get('optimized', False), lastEdit=state.get('lastEdit'))


def run_optimize(state):
    """Territory optimisation against the current org snapshot."""
    result = optimize_territories(state['territories'], state['org'], state['params'])
    return _derive(state['params'], state['org'], result['territories'], state.get('columns', ()),
                   optimized=result['optimized'] or state.get('optimized', False),
                   optimizeResult={'optimized': result['optimized'], 'reason': result['reason']},
                   lastEdit=state.get('lastEdit'))


def summarize(state):
    t = state['totals']
    tt = state['territoryTotals']
    return (f"{state['params'].get('planName', 'Plan')}: {t['totalRows']} rows, "
            f"headcount {t['headcount']}, expected {format_currency(t['expectedCapacity'])}, "
            f"validated {format_currency(t['validatedCapacity'])}, "
            f"difference {format_currency(t['difference'])} | "
            f"{tt['totalTerritories']} territories, {tt['totalUnits']:,} units, "
            f"TAM {format_currency(tt['totalTam'])}")


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(message)s')
    state = run_all(sys.argv[1] if len(sys.argv) > 1 else None)
    logging.info(summarize(state))
    state = run_optimize(state)
    if state['optimizeResult']['optimized']:
        for t in state['territories']:
            logging.info(f"  {t['name']:<12} units={t['units']:>5} tam={format_currency(t['tam'])}")
    else:
        logging.warning(f"optimisation skipped: {state['optimizeResult']['reason']}")
