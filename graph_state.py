# graph_state.py
"""Graph model behind the liked-songs force graph.

Song nodes hang off a fixed "ME" node. Expanding a song node fetches more
likes from its artist and merges them in as children of that node. A
GraphState is rebuilt on every expansion; `expand` never touches the
state it is called on.
"""
import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

log = logging.getLogger("synaptic.graph")

SELF_ID = "ME"
CHILD_RADIUS = 100.0


@dataclass(frozen=True)
class GraphNode:
    id: str
    type: str = "song"
    data: Dict[str, Any] = field(default_factory=dict)
    expanded: bool = False
    x: Optional[float] = None
    y: Optional[float] = None

    @classmethod
    def from_track(cls, track: dict) -> "GraphNode":
        user = track.get("user")
        user = user if isinstance(user, dict) else {}
        return cls(
            id=str(track["id"]),
            type="song",
            data={
                "title": track.get("title"),
                "artist_name": user.get("username"),
                "artist_id": user.get("id"),
                "artwork_url": track.get("artwork_url"),
                "liked_at": track.get("created_at"),
                "permalink_url": track.get("permalink_url"),
            },
        )

    def to_dict(self) -> dict:
        out = {"id": self.id, "type": self.type, "data": dict(self.data), "expanded": self.expanded}
        if self.x is not None and self.y is not None:
            out["x"], out["y"] = self.x, self.y
        return out


def self_node() -> GraphNode:
    # the viewer; never expandable
    return GraphNode(id=SELF_ID, type="user", data={"username": "Me"})


def link_key(a: str, b: str) -> Tuple[str, str]:
    return (a, b) if a <= b else (b, a)


def _is_valid_track(track: Any) -> bool:
    return isinstance(track, dict) and bool(track.get("id"))


def _endpoint_id(end: Any) -> Optional[str]:
    # the renderer swaps link endpoints for node objects once it has laid them out
    if isinstance(end, dict):
        end = end.get("id")
    if end is None or end == "":
        return None
    return str(end)


def _coord(v: Any) -> Optional[float]:
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return None
    v = float(v)
    return v if math.isfinite(v) else None


class GraphState:
    def __init__(self):
        self.nodes: Dict[str, GraphNode] = {SELF_ID: self_node()}
        # canonical key -> (source, target) as first added
        self.links: Dict[Tuple[str, str], Tuple[str, str]] = {}

    @property
    def center_node(self) -> GraphNode:
        return self.nodes[SELF_ID]

    def add_node(self, node: GraphNode) -> None:
        if node.id not in self.nodes:
            self.nodes[node.id] = node

    def add_link(self, from_id: str, to_id: str) -> None:
        if from_id == to_id:
            return
        key = link_key(from_id, to_id)
        if key not in self.links:
            self.links[key] = (from_id, to_id)

    def copy(self) -> "GraphState":
        # GraphNode is frozen, so sharing the node objects is safe
        other = GraphState()
        other.nodes = dict(self.nodes)
        other.links = dict(self.links)
        return other

    def edge_set(self) -> set:
        return set(self.links)

    def to_visualization_format(self) -> dict:
        nodes = [self.center_node.to_dict()]
        nodes.extend(n.to_dict() for nid, n in self.nodes.items() if nid != SELF_ID)
        links = [{"source": s, "target": t} for s, t in self.links.values()]
        return {"nodes": nodes, "links": links}

    def expand(self, parent_id: str, new_tracks: Iterable[dict]) -> "GraphState":
        """Return a new state with `new_tracks` attached to `parent_id`.

        The parent is marked expanded. An unknown parent, or the ME node,
        leaves the graph as it was: nothing gets attached to a node that
        isn't there.
        """
        nxt = self.copy()
        parent = nxt.nodes.get(parent_id)
        if parent is None:
            log.warning("expand: unknown node %r, graph left unchanged", parent_id)
            return nxt
        if parent.type == "user":
            log.warning("expand: node %r is not expandable", parent_id)
            return nxt

        added = 0
        for track in new_tracks or []:
            if not _is_valid_track(track):
                continue
            child = GraphNode.from_track(track)
            if child.id == parent_id:
                continue
            nxt.add_node(child)
            nxt.add_link(parent_id, child.id)
            added += 1
        nxt.nodes[parent_id] = replace(parent, expanded=True)
        log.debug("expanded %s with %d track(s); graph has %d nodes, %d links",
                  parent_id, added, len(nxt.nodes), len(nxt.links))
        return nxt

    @classmethod
    def from_visualization(cls, payload: Any) -> "GraphState":
        """Rebuild a state from a `{nodes, links}` payload.

        Keeps `expanded` flags and positions. Entries that aren't dicts or
        have no id are dropped, as are links to nodes not in the payload.
        """
        state = cls()
        if not isinstance(payload, dict):
            return state
        for raw in payload.get("nodes") or []:
            if not isinstance(raw, dict) or _endpoint_id(raw.get("id")) is None:
                continue
            nid = str(raw["id"])
            data = raw.get("data") if isinstance(raw.get("data"), dict) else {}
            x, y = _coord(raw.get("x")), _coord(raw.get("y"))
            if nid == SELF_ID:
                state.nodes[SELF_ID] = replace(state.center_node, x=x, y=y)
                continue
            state.add_node(GraphNode(
                id=nid,
                type="song",
                data=dict(data),
                expanded=bool(raw.get("expanded")),
                x=x, y=y,
            ))
        for raw in payload.get("links") or []:
            if not isinstance(raw, dict):
                continue
            s, t = _endpoint_id(raw.get("source")), _endpoint_id(raw.get("target"))
            if s in state.nodes and t in state.nodes:
                state.add_link(s, t)
        return state


def build_from_tracks(tracks: Any) -> Optional[GraphState]:
    if not isinstance(tracks, list):
        return None
    state = GraphState()
    for track in tracks:
        if _is_valid_track(track):
            node = GraphNode.from_track(track)
            state.add_node(node)
            state.add_link(SELF_ID, node.id)
    return state


def transform_tracks_to_graph_data(tracks: Any) -> dict:
    state = build_from_tracks(tracks)
    if state is None:
        log.error("tracks is not a list: %s", type(tracks).__name__)
        return {"nodes": [], "links": []}
    return state.to_visualization_format()


def layout_children(graph_data: dict, parent_id: str, child_ids: List[str],
                    radius: float = CHILD_RADIUS) -> dict:
    """Place `child_ids` on an even circle around the parent, in place.

    Nothing moves if the parent has no position yet; the renderer will
    place those nodes itself.
    """
    by_id = {n["id"]: n for n in graph_data.get("nodes", [])}
    parent = by_id.get(parent_id)
    if not parent or parent.get("x") is None or parent.get("y") is None or not child_ids:
        return graph_data
    n = len(child_ids)
    for i, cid in enumerate(child_ids):
        node = by_id.get(cid)
        if node is None:
            continue
        angle = 2 * math.pi * i / n
        node["x"] = parent["x"] + radius * math.cos(angle)
        node["y"] = parent["y"] + radius * math.sin(angle)
    return graph_data
