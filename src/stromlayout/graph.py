"""NetworkX views of the layout model."""

import networkx as nx

from stromlayout.layout_types import LayoutModel


def build_layout_graph(model: LayoutModel) -> nx.DiGraph:
    """
    Build a directed graph using the union-node model.

    Every union becomes a "family" node. Partners point at their family node
    and the family node points at each child, so spouses share a rank and
    siblings hang from one node.

    Args:
        model: Layout model from the model builder

    Returns:
        A graph with node_type "person"/"family" and edge_type
        "spouse_to_family"/"family_to_child"
    """
    H = nx.DiGraph()

    # Note: use 'person_name' instead of 'name' to avoid conflict with pydot
    for person_id, person in model.persons.items():
        H.add_node(
            person_id,
            node_type="person",
            person_name=person.display_name,
            gender=person.gender,
            birth_date=person.birth_date,
        )

    for union_id, union in model.unions.items():
        H.add_node(union_id, node_type="family", spouses=tuple(union.partners))
        for partner_id in union.partners:
            H.add_edge(partner_id, union_id, edge_type="spouse_to_family")

    for edge in model.edges:
        H.add_edge(edge.parent_union_id, edge.child_person_id, edge_type="family_to_child")

    return H


def find_descent_cycle(model: LayoutModel) -> list[str] | None:
    """
    Look for a person who is their own ancestor.

    Returns:
        The person ids along the cycle, or None when descent is acyclic
    """
    H = build_layout_graph(model)
    try:
        cycle = nx.find_cycle(H, orientation="original")
    except nx.NetworkXNoCycle:
        return None
    return [edge[0] for edge in cycle if H.nodes[edge[0]].get("node_type") == "person"]
