import openpyxl
import pytest

from engines.data_loader import demo_hierarchy
from engines.hierarchy import build_tree


def leaf(node_id, headcount=1, validated=None, role="AE", **extra):
    node = {"id": node_id, "name": node_id.upper(), "role": role,
            "headcount": headcount, "validatedCapacity": validated}
    node.update(extra)
    return node


@pytest.fixture
def org():
    return build_tree(demo_hierarchy())


@pytest.fixture
def small_org():
    # root with two RVPs: A (3 AEs, headcount 1 each) and B (one AE, headcount 5)
    return build_tree({
        "id": "root", "name": "CRO", "role": "CRO",
        "children": [
            {"id": "a", "name": "RVP A", "role": "RVP", "children": [
                leaf("a1", validated=100), leaf("a2", validated=None), leaf("a3", validated=50),
            ]},
            {"id": "b", "name": "RVP B", "role": "RVP", "children": [leaf("b1", headcount=5)]},
        ],
    })


@pytest.fixture
def write_workbook():
    def _write(path, sheets):
        wb = openpyxl.Workbook()
        wb.remove(wb.active)
        for name, rows in sheets.items():
            ws = wb.create_sheet(name)
            for row in rows:
                ws.append(list(row))
        path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(path)
        return path
    return _write
