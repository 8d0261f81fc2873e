from stromlayout.build_model import build_layout_model
from stromlayout.graph import build_layout_graph, find_descent_cycle
from stromlayout.layout_types import LayoutModel, ParentChildEdge, PersonNode, UnionNode
from stromlayout.subgraph import select_subgraph


def test_layout_graph(nuclear_data):
    model = build_layout_model(nuclear_data, select_subgraph(nuclear_data, "F", 2, 2))
    H = build_layout_graph(model)

    persons = [n for n, d in H.nodes(data=True) if d["node_type"] == "person"]
    families = [n for n, d in H.nodes(data=True) if d["node_type"] == "family"]
    assert len(persons) == 9
    assert len(families) == 6
    assert H.nodes["F"]["person_name"] == "F Test"
    assert H.edges["F", "union_F_W"]["edge_type"] == "spouse_to_family"
    assert H.edges["union_F_W", "K1"]["edge_type"] == "family_to_child"
    assert find_descent_cycle(model) is None


def test_descent_cycle_found():
    model = LayoutModel(
        persons={
            "a": PersonNode("a", "A", "", "male"),
            "b": PersonNode("b", "B", "", "female"),
        },
        unions={
            "union_a_single": UnionNode("union_a_single", "a", None, None, ["b"]),
            "union_b_single": UnionNode("union_b_single", "b", None, None, ["a"]),
        },
        edges=[ParentChildEdge("union_a_single", "b"), ParentChildEdge("union_b_single", "a")],
        person_to_union={"a": "union_a_single", "b": "union_b_single"},
        child_to_parent_union={"b": "union_a_single", "a": "union_b_single"},
    )
    assert sorted(find_descent_cycle(model)) == ["a", "b"]
