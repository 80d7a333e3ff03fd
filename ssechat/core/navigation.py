"""
Active path resolution over a branching conversation tree.

A branch selection maps a parent id (or ``ROOT_KEY`` for the top level) to
the chosen child id. Selections that no longer name a child of their key
are ignored, so callers never have to update the selection in lockstep
with tree mutations.
"""

from typing import Dict, List, Optional, Tuple

from .models import MessageNode
from .tree import ConversationTree

ROOT_KEY = "root"

BranchSelection = Dict[str, str]


def _pick_root(tree: ConversationTree, selection: BranchSelection) -> Optional[MessageNode]:
    selected = selection.get(ROOT_KEY)
    if selected is not None and tree.is_root(selected):
        return tree.get(selected)
    roots = tree.roots()
    return roots[0] if roots else None


def get_active_leaf(tree: ConversationTree, selection: BranchSelection) -> Optional[MessageNode]:
    """
    Resolve the leaf at the end of the visible conversation.

    At every branch point the selected child is followed if it is still a
    child of that node; otherwise the most recently created child wins.

    Returns:
        Leaf node, or None for an empty tree
    """
    current = _pick_root(tree, selection)
    if current is None:
        return None

    while current.children:
        chosen = selection.get(current.id)
        if chosen is None or chosen not in current.children or chosen not in tree:
            chosen = current.children[-1]
        current = tree.nodes[chosen]

    return current


def get_message_path(tree: ConversationTree, leaf_id: Optional[str]) -> List[MessageNode]:
    """
    Get the linear path from a root down to leaf_id.

    A parent id that names a missing node ends the walk, yielding a
    truncated path.
    """
    path = []
    seen = set()
    current_id = leaf_id

    while current_id is not None and current_id not in seen:
        node = tree.get(current_id)
        if node is None:
            break
        seen.add(current_id)
        path.append(node)
        current_id = node.parent_id

    path.reverse()
    return path


def get_active_path(tree: ConversationTree, selection: BranchSelection) -> List[MessageNode]:
    leaf = get_active_leaf(tree, selection)
    if leaf is None:
        return []
    return get_message_path(tree, leaf.id)


def selection_key(tree: ConversationTree, node_id: str) -> str:
    """Key under which the choice between node_id and its siblings is stored"""
    if tree.is_root(node_id):
        return ROOT_KEY
    return tree.nodes[node_id].parent_id


def branch_position(tree: ConversationTree, node_id: str) -> Tuple[int, int]:
    """
    Position of a node among its siblings.

    Returns:
        (zero-based index, sibling count)
    """
    sibling_ids = tree.get_sibling_ids(node_id)
    return sibling_ids.index(node_id), len(sibling_ids)
