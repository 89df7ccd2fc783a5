"""
Capacity Planner — Role Registry
Fixed role set, the optional fields each role carries, and role-keyed subtitle text.
"""

ROLES = ('CRO', 'SVP', 'AVP', 'RVP', 'AE')
LEAF_ROLE = 'AE'

# Optional fields that are only meaningful for one role
ROLE_FIELDS = {
    'CRO': (),
    'SVP': (),
    'AVP': ('totalHC',),
    'RVP': ('allocatedHC', 'validatedVeterans', 'validatedTBH'),
    'AE':  ('repType', 'industry', 'startDate'),
}
ALL_ROLE_FIELDS = tuple(f for fields in ROLE_FIELDS.values() for f in fields)


def _plural(n, word):
    return f"{n} {word}{'s' if n > 1 else ''}"


def _ae_subtitle(node):
    parts = []
    rep = node.get('repType')
    if rep == 'Veteran':
        parts.append('Veteran')
    elif rep == 'TBH':
        start = node.get('startDate')
        parts.append(f"TBH - {start}" if start else 'TBH')
    industry = node.get('industry')
    if industry:
        return f"({''.join(parts)}) — Assigned to: {industry}"
    return f"({''.join(parts)})" if parts else ''


def _rvp_subtitle(node):
    parts = []
    if node.get('allocatedHC') is not None:
        parts.append(f"Allocated: {node['allocatedHC']} HC")
    validated = []
    vets = node.get('validatedVeterans') or 0
    tbh = node.get('validatedTBH') or 0
    if vets > 0:
        validated.append(_plural(vets, 'Veteran'))
    if tbh > 0:
        validated.append(_plural(tbh, 'TBH'))
    if validated:
        parts.append(f"Validated: {', '.join(validated)}")
    return ' | '.join(parts)


def _avp_subtitle(node):
    if node.get('totalHC') is not None:
        return f"Total HC: {node['totalHC']}"
    return ''


def _no_subtitle(node):
    return ''


SUBTITLE_BUILDERS = {
    'AE': _ae_subtitle,
    'RVP': _rvp_subtitle,
    'AVP': _avp_subtitle,
    'SVP': _no_subtitle,
    'CRO': _no_subtitle,
}


def build_subtitle(node):
    """Row subtitle for a node. Roles outside the registry fall back to the person label."""
    builder = SUBTITLE_BUILDERS.get(node.get('role'))
    if builder is None:
        return node.get('personName') or ''
    return builder(node)
