import matplotlib

matplotlib.use("Agg")

import pytest

from stromlayout.models import StromData


def family_json(people: dict, partnerships: dict) -> dict:
    """
    Raw application JSON for a small family.

    people maps id -> (gender, birth date or None); partnerships maps
    id -> (person1, person2, [children]). Parent, child and partnership
    references on the persons are derived from the partnerships.
    """
    persons = {
        person_id: {
            "id": person_id,
            "firstName": person_id,
            "lastName": "Test",
            "gender": gender,
            "birthDate": birth,
            "partnerships": [],
            "parentIds": [],
            "childIds": [],
        }
        for person_id, (gender, birth) in people.items()
    }
    raw_partnerships = {}
    for partnership_id, (p1, p2, children) in partnerships.items():
        raw_partnerships[partnership_id] = {
            "id": partnership_id,
            "person1Id": p1,
            "person2Id": p2,
            "childIds": list(children),
            "status": "married",
        }
        for partner_id in (p1, p2):
            persons[partner_id]["partnerships"].append(partnership_id)
            persons[partner_id]["childIds"].extend(children)
        for child_id in children:
            persons[child_id]["parentIds"].extend([p1, p2])
    return {"persons": persons, "partnerships": raw_partnerships}


NUCLEAR_PEOPLE = {
    "F": ("male", "1970-01-01"),
    "W": ("female", "1971-01-01"),
    "K1": ("female", "2000-01-01"),
    "K2": ("male", "2002-01-01"),
    "Sib": ("female", "1968-01-01"),
    "FA": ("male", "1940-01-01"),
    "FM": ("female", "1942-01-01"),
    "WA": ("male", "1945-01-01"),
    "WM": ("female", "1946-01-01"),
}

NUCLEAR_PARTNERSHIPS = {
    "pF": ("F", "W", ["K1", "K2"]),
    "pP": ("FA", "FM", ["Sib", "F"]),
    "pW": ("WA", "WM", ["W"]),
}


@pytest.fixture
def make_data():
    def _make(people: dict, partnerships: dict) -> StromData:
        return StromData.from_dict(family_json(people, partnerships))

    return _make


@pytest.fixture
def nuclear_raw():
    """Focus F with wife W, two kids, an older sister and both sets of parents."""
    return family_json(NUCLEAR_PEOPLE, NUCLEAR_PARTNERSHIPS)


@pytest.fixture
def nuclear_data(nuclear_raw):
    return StromData.from_dict(nuclear_raw)


@pytest.fixture
def three_children_data(make_data):
    """Focus P1 with P2 and three children; the middle child B has a family of their own."""
    return make_data(
        {
            "P1": ("male", "1960-01-01"),
            "P2": ("female", "1961-01-01"),
            "A": ("female", "1990-01-01"),
            "B": ("male", "1992-01-01"),
            "B2": ("female", "1993-01-01"),
            "BC": ("male", "2020-01-01"),
            "C": ("male", "1994-01-01"),
        },
        {
            "pP": ("P1", "P2", ["A", "B", "C"]),
            "pB": ("B", "B2", ["BC"]),
        },
    )


@pytest.fixture
def extended_data(make_data):
    """The nuclear family plus paternal grandparents, an uncle, his wife and a cousin."""
    people = dict(NUCLEAR_PEOPLE)
    people.update(
        {
            "GA": ("male", "1910-01-01"),
            "GM": ("female", "1912-01-01"),
            "U": ("male", "1944-01-01"),
            "UW": ("female", "1945-06-01"),
            "Co": ("male", "1975-01-01"),
        }
    )
    partnerships = dict(NUCLEAR_PARTNERSHIPS)
    partnerships.update(
        {
            "pG": ("GA", "GM", ["FA", "U"]),
            "pU": ("U", "UW", ["Co"]),
        }
    )
    return make_data(people, partnerships)


@pytest.fixture
def half_sibling_data(make_data):
    """A with B (son K1) and with C (daughter K2)."""
    return make_data(
        {
            "A": ("male", "1950-01-01"),
            "B": ("female", "1952-01-01"),
            "C": ("female", "1955-01-01"),
            "K1": ("male", "1980-01-01"),
            "K2": ("female", "1990-01-01"),
        },
        {
            "pAB": ("A", "B", ["K1"]),
            "pAC": ("A", "C", ["K2"]),
        },
    )
