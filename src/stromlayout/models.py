"""Data classes for the source family tree entities."""

import json
from dataclasses import dataclass, field
from pathlib import Path

PersonId = str
PartnershipId = str

TERMINATED_STATUSES = ("divorced", "separated")


@dataclass
class Person:
    id: PersonId
    first_name: str
    last_name: str
    gender: str  # "male", "female"; anything else is treated as unknown
    is_placeholder: bool = False
    partnerships: list[PartnershipId] = field(default_factory=list)
    parent_ids: list[PersonId] = field(default_factory=list)
    child_ids: list[PersonId] = field(default_factory=list)
    birth_date: str | None = None  # ISO format YYYY-MM-DD or None
    birth_place: str | None = None
    death_date: str | None = None
    death_place: str | None = None


@dataclass
class Partnership:
    id: PartnershipId
    person1_id: PersonId
    person2_id: PersonId
    child_ids: list[PersonId] = field(default_factory=list)
    status: str = "married"  # married, partners, divorced, separated
    start_date: str | None = None
    start_place: str | None = None
    end_date: str | None = None
    note: str | None = None
    is_primary: bool = False

    @property
    def is_terminated(self) -> bool:
        return self.status in TERMINATED_STATUSES


@dataclass
class StromData:
    persons: dict[PersonId, Person] = field(default_factory=dict)
    partnerships: dict[PartnershipId, Partnership] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict) -> "StromData":
        """
        Build the data model from the camelCase JSON shape used by the application.

        Missing fields fall back to their defaults. Records that are not mappings
        are skipped.
        """
        persons: dict[PersonId, Person] = {}
        for key, item in (raw.get("persons") or {}).items():
            if not isinstance(item, dict):
                continue
            person_id = str(item.get("id", key))
            persons[person_id] = Person(
                id=person_id,
                first_name=item.get("firstName") or "",
                last_name=item.get("lastName") or "",
                gender=item.get("gender") or "",
                is_placeholder=bool(item.get("isPlaceholder", False)),
                partnerships=[str(p) for p in item.get("partnerships") or []],
                parent_ids=[str(p) for p in item.get("parentIds") or []],
                child_ids=[str(c) for c in item.get("childIds") or []],
                birth_date=item.get("birthDate"),
                birth_place=item.get("birthPlace"),
                death_date=item.get("deathDate"),
                death_place=item.get("deathPlace"),
            )

        partnerships: dict[PartnershipId, Partnership] = {}
        for key, item in (raw.get("partnerships") or {}).items():
            if not isinstance(item, dict):
                continue
            partnership_id = str(item.get("id", key))
            partnerships[partnership_id] = Partnership(
                id=partnership_id,
                person1_id=str(item.get("person1Id", "")),
                person2_id=str(item.get("person2Id", "")),
                child_ids=[str(c) for c in item.get("childIds") or []],
                status=item.get("status") or "married",
                start_date=item.get("startDate"),
                start_place=item.get("startPlace"),
                end_date=item.get("endDate"),
                note=item.get("note"),
                is_primary=bool(item.get("isPrimary", False)),
            )

        return cls(persons=persons, partnerships=partnerships)


def load_strom_data(path: Path) -> StromData:
    """Read a family tree JSON file into a StromData model."""
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)
    return StromData.from_dict(raw)
