import pytest

from engines.roles import build_subtitle


@pytest.mark.parametrize("node, expected", [
    ({"role": "AE", "repType": "Veteran"}, "(Veteran)"),
    ({"role": "AE", "repType": "TBH", "startDate": "Oct 1 Start"}, "(TBH - Oct 1 Start)"),
    ({"role": "AE", "repType": "TBH", "industry": "MFG"}, "(TBH) — Assigned to: MFG"),
    ({"role": "AE"}, ""),
    ({"role": "RVP", "allocatedHC": 4, "validatedVeterans": 2, "validatedTBH": 1},
     "Allocated: 4 HC | Validated: 2 Veterans, 1 TBH"),
    ({"role": "RVP", "validatedVeterans": 1}, "Validated: 1 Veteran"),
    ({"role": "RVP", "allocatedHC": 0}, "Allocated: 0 HC"),
    ({"role": "AVP", "totalHC": 8}, "Total HC: 8"),
    ({"role": "AVP"}, ""),
    ({"role": "SVP", "personName": "Sarah Mitchell"}, ""),
    ({"role": "CRO", "personName": "Michael Reynolds"}, ""),
    ({"role": "Director", "personName": "Pat Lee"}, "Pat Lee"),
])
def test_build_subtitle(node, expected):
    assert build_subtitle(node) == expected
