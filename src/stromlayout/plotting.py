"""Drawing functions for finished layouts."""

from pathlib import Path

import matplotlib.pyplot as plt
import pydot
from matplotlib.patches import Rectangle

from stromlayout.config import LayoutConfig
from stromlayout.graph import build_layout_graph
from stromlayout.layout_types import LayoutModel, LayoutResult
from stromlayout.models import StromData

# pydot positions are in points, layout coordinates in pixels
POINTS_PER_PIXEL = 0.75


def card_color(gender: str | None) -> str:
    if gender == "male":
        return "lightblue"
    if gender == "female":
        return "lightpink"
    return "lightgray"


def card_label(data: StromData, person_id: str) -> str:
    person = data.persons.get(person_id)
    if person is None:
        return person_id
    birth_year = person.birth_date[:4] if person.birth_date else ""
    death_year = person.death_date[:4] if person.death_date else ""
    label = f"{person.first_name}\n{person.last_name}"
    if birth_year or death_year:
        label += f"\n{birth_year}-{death_year}"
    return label


def plot_layout(
    result: LayoutResult,
    data: StromData,
    config: LayoutConfig,
    output_path: Path | None = None,
):
    """
    Draw the layout with matplotlib: cards colored by gender, bus connections
    and dashed spouse lines. Y grows downwards like on screen.

    Args:
        result: Finished layout
        data: Source data, for names and genders
        config: Configuration the layout was computed with
        output_path: Where to save the image. If None, displays interactively.
    """
    fig, ax = plt.subplots(figsize=(20, 16))

    for person_id, pos in result.positions.items():
        person = data.persons.get(person_id)
        ax.add_patch(
            Rectangle(
                (pos.x, pos.y),
                config.card_width,
                config.card_height,
                facecolor=card_color(person.gender if person else None),
                edgecolor="dimgray",
                linewidth=0.8,
            )
        )
        ax.text(
            pos.x + config.card_width / 2,
            pos.y + config.card_height / 2,
            card_label(data, person_id),
            ha="center",
            va="center",
            fontsize=6,
        )

    line_style = dict(color="darkgray", linewidth=1)
    for connection in result.connections:
        ax.plot([connection.stem_x] * 2, [connection.stem_top_y, connection.stem_bottom_y], **line_style)
        ax.plot([connection.connector_from_x, connection.connector_to_x], [connection.connector_y] * 2, **line_style)
        ax.plot([connection.branch_left_x, connection.branch_right_x], [connection.branch_y] * 2, **line_style)
        for drop in connection.drops:
            ax.plot([drop.x] * 2, [drop.top_y, drop.bottom_y], **line_style)

    for line in result.spouse_lines:
        ax.plot([line.x_min, line.x_max], [line.y] * 2, linestyle="--", **line_style)

    ax.set_aspect("equal")
    ax.autoscale_view()
    ax.invert_yaxis()
    ax.axis("off")
    diagnostics = result.diagnostics
    ax.set_title(f"Family Tree Layout ({diagnostics.total_persons} people, {diagnostics.total_unions} families)")
    fig.tight_layout()

    if output_path:
        fig.savefig(output_path, dpi=150, bbox_inches="tight")
        print(f"Layout saved to {output_path}")
        plt.close(fig)
    else:
        plt.show()


def layout_to_dot(result: LayoutResult, model: LayoutModel, config: LayoutConfig) -> pydot.Dot:
    """
    Build a pydot graph with every person pinned at its layout position.

    Family nodes sit at the union's stem so Graphviz draws spouse and child
    edges through them. Positions are flipped vertically because Graphviz
    puts the origin bottom left.
    """
    H = build_layout_graph(model)
    stems = {connection.union_id: connection for connection in result.connections}
    bottom = max((pos.y for pos in result.positions.values()), default=0.0) + config.card_height

    def pinned(x: float, y: float) -> str:
        return f"{x * POINTS_PER_PIXEL:.1f},{(bottom - y) * POINTS_PER_PIXEL:.1f}!"

    P = pydot.Dot(graph_type="digraph")
    P.set("splines", "ortho")

    for node, data in H.nodes(data=True):
        if data.get("node_type") == "family":
            connection = stems.get(node)
            partner_positions = [result.positions[p] for p in data.get("spouses", ()) if p in result.positions]
            if connection is not None:
                x, y = connection.stem_x, connection.stem_top_y
            elif partner_positions:
                x = sum(p.x for p in partner_positions) / len(partner_positions) + config.card_width / 2
                y = partner_positions[0].y + config.card_height / 2
            else:
                continue
            P.add_node(pydot.Node(str(node), shape="point", width="0.1", height="0.1", label="", pos=pinned(x, y)))
            continue

        pos = result.positions.get(node)
        if pos is None:
            continue
        P.add_node(
            pydot.Node(
                str(node),
                label=data.get("person_name", str(node)),
                shape="box",
                style="rounded,filled",
                fillcolor=card_color(data.get("gender")),
                fontsize="10",
                width=f"{config.card_width / 96:.2f}",
                height=f"{config.card_height / 96:.2f}",
                fixedsize="true",
                pos=pinned(pos.x + config.card_width / 2, pos.y + config.card_height / 2),
            )
        )

    present = {n.get_name().strip('"') for n in P.get_nodes()}
    for u, v, data in H.edges(data=True):
        if str(u) not in present or str(v) not in present:
            continue
        if data.get("edge_type") == "spouse_to_family":
            P.add_edge(pydot.Edge(str(u), str(v), dir="none", color="darkgray"))
        else:
            P.add_edge(pydot.Edge(str(u), str(v), color="darkgray"))
    return P


def write_dot(result: LayoutResult, model: LayoutModel, config: LayoutConfig, output_path: Path):
    """Write the pinned graph: .dot as raw source, other extensions rendered by neato -n."""
    P = layout_to_dot(result, model, config)
    ext = output_path.suffix.lower().lstrip(".")
    if ext in ("dot", "gv"):
        P.write(str(output_path), format="raw")
    else:
        if ext not in ("png", "svg", "pdf"):
            ext = "png"
        P.write(str(output_path), prog=["neato", "-n"], format=ext)
    print(f"Graph saved to {output_path}")
