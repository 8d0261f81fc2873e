"""Data classes passed between the layout pipeline stages."""

from dataclasses import dataclass, field

from stromlayout.models import PartnershipId, PersonId

UnionId = str
BlockId = str
BranchId = str

SIDE_HUSBAND = "HUSBAND"
SIDE_WIFE = "WIFE"
SIDE_BOTH = "BOTH"
SIDE_DETACHED = "DETACHED"

PHASE_A = "A"
PHASE_B = "B"
PHASES = (PHASE_A, PHASE_B)


# ==================== STEP 1: SELECT SUBGRAPH ====================


@dataclass
class GraphSelection:
    # dicts keyed by id keep insertion order and act as ordered sets
    persons: dict[PersonId, None]
    partnerships: dict[PartnershipId, None]
    focus_person_id: PersonId
    max_ancestor_gen: int = 0
    max_descendant_gen: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.persons


# ==================== STEP 2: BUILD MODEL ====================


@dataclass
class PersonNode:
    id: PersonId
    first_name: str
    last_name: str
    gender: str
    birth_date: str | None = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.id


@dataclass
class UnionNode:
    """A couple or single parent; partners are never split."""

    id: UnionId
    partner_a: PersonId  # left: male, otherwise the smaller id
    partner_b: PersonId | None
    partnership_id: PartnershipId | None
    child_ids: list[PersonId] = field(default_factory=list)
    # partners whose card belongs to another union (partner chains)
    shared_partner_ids: tuple[PersonId, ...] = ()

    @property
    def partners(self) -> list[PersonId]:
        return [self.partner_a] if self.partner_b is None else [self.partner_a, self.partner_b]

    @property
    def own_partners(self) -> list[PersonId]:
        """Partners whose cards this union places."""
        return [p for p in self.partners if p not in self.shared_partner_ids]

    @property
    def is_chain(self) -> bool:
        return bool(self.shared_partner_ids)


@dataclass(frozen=True)
class ParentChildEdge:
    parent_union_id: UnionId
    child_person_id: PersonId


@dataclass
class LayoutModel:
    persons: dict[PersonId, PersonNode]
    unions: dict[UnionId, UnionNode]
    edges: list[ParentChildEdge]
    person_to_union: dict[PersonId, UnionId]
    child_to_parent_union: dict[PersonId, UnionId]
    # person -> chain unions of their further partnerships, nearest first
    partner_chains: dict[PersonId, list[UnionId]] = field(default_factory=dict)


# ==================== STEP 3: ASSIGN GENERATIONS ====================


@dataclass
class GenerationBand:
    persons: list[PersonId] = field(default_factory=list)
    unions: list[UnionId] = field(default_factory=list)


@dataclass
class GenerationalModel:
    model: LayoutModel
    person_gen: dict[PersonId, int]
    union_gen: dict[UnionId, int]
    bands: dict[int, GenerationBand]
    min_gen: int  # oldest ancestors (negative)
    max_gen: int  # youngest descendants (positive)


# ==================== STEP 4: MEASURE SUBTREES ====================


@dataclass
class FamilyBlock:
    """A union and the subtree of child families hanging from it."""

    id: BlockId
    root_union_id: UnionId
    side: str
    generation: int
    child_block_ids: list[BlockId] = field(default_factory=list)
    parent_block_id: BlockId | None = None
    sibling_index: int = 0
    branch_id: BranchId | None = None  # None for the focus block and ancestors
    anchor_person_id: PersonId | None = None  # child an ancestor block hangs over
    # chain blocks sit in the same row beside this block, nearest first
    chain_block_ids: list[BlockId] = field(default_factory=list)
    chain_owner_id: BlockId | None = None
    chain_left: bool = False

    # Measurements (bottom-up)
    width: float = 0.0
    couple_width: float = 0.0
    children_width: float = 0.0
    envelope_width: float = 0.0
    left_extent: float = 0.0
    right_extent: float = 0.0

    # Positions (placement and constraints)
    x_left: float = 0.0
    x_right: float = 0.0
    x_center: float = 0.0

    # Anchors (routing and debug)
    husband_anchor_x: float = 0.0
    wife_anchor_x: float = 0.0
    children_center_x: float = 0.0
    couple_center_x: float = 0.0

    @property
    def is_ancestor(self) -> bool:
        return self.anchor_person_id is not None


@dataclass
class SiblingFamilyBranch:
    id: BranchId
    parent_union_id: UnionId
    root_block_id: BlockId
    child_person_id: PersonId
    sibling_index: int
    block_ids: list[BlockId] = field(default_factory=list)
    union_ids: list[UnionId] = field(default_factory=list)
    envelope_width: float = 0.0
    child_branch_ids: list[BranchId] = field(default_factory=list)
    parent_branch_id: BranchId | None = None
    generation: int = 0


@dataclass
class MeasuredModel:
    gen_model: GenerationalModel
    person_width: dict[PersonId, float]
    union_width: dict[UnionId, float]
    subtree_width: dict[UnionId, float]
    blocks: dict[BlockId, FamilyBlock] = field(default_factory=dict)
    root_block_ids: list[BlockId] = field(default_factory=list)
    union_to_block: dict[UnionId, BlockId] = field(default_factory=dict)
    focus_block_id: BlockId | None = None
    branches: dict[BranchId, SiblingFamilyBranch] = field(default_factory=dict)
    block_to_branch: dict[BlockId, BranchId] = field(default_factory=dict)
    union_to_branch: dict[UnionId, BranchId] = field(default_factory=dict)
    top_level_branch_ids: list[BranchId] = field(default_factory=list)


# ==================== STEP 5: PLACE X ====================


@dataclass
class PlacedModel:
    measured: MeasuredModel
    person_x: dict[PersonId, float]  # left edge of the person card
    union_x: dict[UnionId, float]  # center of the union
    blocks: dict[BlockId, FamilyBlock]  # copies of the measured blocks with bounds


# ==================== STEP 6: APPLY CONSTRAINTS ====================


@dataclass
class ConstrainedModel:
    placed: PlacedModel
    iterations: int
    final_max_violation: float
    phases_run: list[str] = field(default_factory=list)


# ==================== STEP 7: ROUTE EDGES ====================


@dataclass
class ChildDrop:
    person_id: PersonId
    x: float
    top_y: float  # bus Y
    bottom_y: float  # top of the child card


@dataclass
class Connection:
    """Bus routing from a union to its children: stem, connector, bus, drops."""

    union_id: UnionId
    stem_x: float
    stem_top_y: float
    stem_bottom_y: float
    branch_y: float
    branch_left_x: float
    branch_right_x: float
    connector_from_x: float
    connector_to_x: float
    connector_y: float
    drops: list[ChildDrop] = field(default_factory=list)

    @property
    def footprint(self) -> tuple[float, float]:
        """Horizontal extent of bus plus connector."""
        return (
            min(self.stem_x, self.branch_left_x),
            max(self.stem_x, self.branch_right_x),
        )


@dataclass
class SpouseLine:
    union_id: UnionId
    person1_id: PersonId
    person2_id: PersonId
    partnership_id: PartnershipId | None
    y: float
    x_min: float  # right edge of the left card
    x_max: float  # left edge of the right card


@dataclass
class RoutedModel:
    constrained: ConstrainedModel
    connections: list[Connection]
    spouse_lines: list[SpouseLine]


# ==================== STEP 8: EMIT RESULT ====================


@dataclass
class Position:
    x: float
    y: float


@dataclass
class LayoutDiagnostics:
    total_persons: int = 0
    total_unions: int = 0
    generation_range: tuple[int, int] = (0, 0)
    iterations: int = 0
    branch_count: int = 0
    validation_passed: bool = True
    errors: list[str] = field(default_factory=list)
    final_max_violation: float = 0.0
    phases_run: list[str] | None = None
    routed_edges: bool | None = None


@dataclass
class LayoutResult:
    positions: dict[PersonId, Position] = field(default_factory=dict)
    connections: list[Connection] = field(default_factory=list)
    spouse_lines: list[SpouseLine] = field(default_factory=list)
    diagnostics: LayoutDiagnostics = field(default_factory=LayoutDiagnostics)
    block_bounds: dict[BlockId, tuple[float, float]] = field(default_factory=dict)


@dataclass
class ValidationResult:
    passed: bool
    errors: list[str]
