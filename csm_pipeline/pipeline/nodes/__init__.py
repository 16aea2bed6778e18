"""Controller graph nodes."""

from .map_phase import map_node
from .merge import bridge_node, merge_node
from .reduce import direct_node, reduce_node
from .routing import route_node, select_path, should_continue
from .tail import finalize_node, refine_node, tail_node

__all__ = [
    "route_node",
    "select_path",
    "should_continue",
    "direct_node",
    "map_node",
    "merge_node",
    "bridge_node",
    "reduce_node",
    "tail_node",
    "refine_node",
    "finalize_node",
]
