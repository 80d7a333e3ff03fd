"""
Tree structure for conversations with branching support.

Messages live in a flat id-indexed map; each node carries its parent id and
the ordered ids of its children. ``ConversationTree.build`` rebuilds the
children lists from parent ids alone, so any inconsistent tree can be
recovered from its flat node list.
"""

import dataclasses
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from .models import MessageNode

logger = logging.getLogger(__name__)


class ConversationTree:
    """
    In-memory conversation tree.

    Normally holds a single root, but any number of roots is tolerated:
    a node whose parent is missing is treated as a root of its own.
    """

    def __init__(self):
        self.nodes: Dict[str, MessageNode] = {}

    @classmethod
    def build(cls, nodes: Iterable[Union[MessageNode, Dict[str, Any]]]) -> 'ConversationTree':
        """
        Index a flat list of messages into a tree.

        Pass 1 creates the id map from copies of the given nodes with their
        children cleared. Pass 2 links every node under its parent. Running
        build twice over the same list yields the same relationships.

        Args:
            nodes: MessageNode objects or durable record dicts

        Returns:
            New ConversationTree
        """
        tree = cls()

        for item in nodes:
            node = item if isinstance(item, MessageNode) else MessageNode.from_dict(item)
            if node.id in tree.nodes:
                logger.warning(f"Duplicate message id {node.id} ignored")
                continue
            tree.nodes[node.id] = dataclasses.replace(node, children=[])

        for node in tree.nodes.values():
            if node.parent_id is None:
                continue
            parent = tree.nodes.get(node.parent_id)
            if parent is None or node.parent_id == node.id:
                logger.warning(
                    f"Message {node.id} references missing parent {node.parent_id}; "
                    "treating it as a root"
                )
                continue
            if node.id not in parent.children:
                parent.children.append(node.id)

        return tree

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    def __iter__(self) -> Iterator[MessageNode]:
        return iter(self.nodes.values())

    def get(self, node_id: Optional[str]) -> Optional[MessageNode]:
        if node_id is None:
            return None
        return self.nodes.get(node_id)

    def is_root(self, node_id: str) -> bool:
        """A node is a root when it has no parent or its parent is gone"""
        node = self.nodes.get(node_id)
        if node is None:
            return False
        return node.parent_id is None or node.parent_id not in self.nodes

    def roots(self) -> List[MessageNode]:
        """All roots, in insertion order"""
        return [node for node in self.nodes.values() if self.is_root(node.id)]

    def get_children(self, node_id: str) -> List[MessageNode]:
        node = self.nodes.get(node_id)
        if node is None:
            return []
        return [self.nodes[child_id] for child_id in node.children if child_id in self.nodes]

    def get_sibling_ids(self, node_id: str) -> List[str]:
        """
        Get the ids of a node and its siblings, in creation order.

        Returns the parent's children, all roots when the node is a root,
        or just ``[node_id]`` when the node is unknown.
        """
        node = self.nodes.get(node_id)
        if node is None:
            return [node_id]
        if self.is_root(node_id):
            return [root.id for root in self.roots()]
        return list(self.nodes[node.parent_id].children)

    def get_siblings(self, node_id: str) -> List[MessageNode]:
        """Siblings of a node (itself included) resolved to nodes"""
        return [self.nodes[sid] for sid in self.get_sibling_ids(node_id) if sid in self.nodes]

    def append_child(self, parent_id: str, child_id: str) -> None:
        """Record child_id as the newest child of parent_id"""
        self.nodes[parent_id].children.append(child_id)

    def add_node(self, node: MessageNode) -> bool:
        """
        Insert a node and link it under its parent.

        Nodes already in the tree that name this node as their parent are
        adopted as its children, in insertion order.

        Returns:
            False if a node with the same id already exists
        """
        if node.id in self.nodes:
            logger.warning(f"Duplicate message id {node.id} ignored")
            return False

        node.children = [
            other.id for other in self.nodes.values() if other.parent_id == node.id
        ]
        self.nodes[node.id] = node
        if node.parent_id is not None:
            if node.parent_id in self.nodes and node.parent_id != node.id:
                self.append_child(node.parent_id, node.id)
            else:
                logger.warning(
                    f"Message {node.id} added with missing parent {node.parent_id}"
                )
        return True

    def delete_subtree(self, node_id: str) -> List[str]:
        """
        Delete a node and everything below it.

        Returns:
            Ids of removed nodes (empty if node_id is unknown)
        """
        node = self.nodes.get(node_id)
        if node is None:
            return []

        removed = []
        stack = [node_id]
        while stack:
            current_id = stack.pop()
            current = self.nodes.pop(current_id, None)
            if current is None:
                continue
            removed.append(current_id)
            stack.extend(current.children)

        parent = self.nodes.get(node.parent_id) if node.parent_id else None
        if parent is not None and node_id in parent.children:
            parent.children.remove(node_id)

        return removed

    def subtree_ids(self, node_id: str) -> List[str]:
        """Ids reachable from node_id, including itself"""
        if node_id not in self.nodes:
            return []
        found = []
        stack = [node_id]
        while stack:
            current_id = stack.pop()
            current = self.nodes.get(current_id)
            if current is None:
                continue
            found.append(current_id)
            stack.extend(current.children)
        return found

    def to_list(self) -> List[Dict[str, Any]]:
        """Flat list of durable records"""
        return [node.to_dict() for node in self.nodes.values()]

    def format_tree(self, max_content_length: int = 30) -> str:
        """Render the tree as indented text"""
        lines = []

        def walk(node: MessageNode, prefix: str, is_last: bool):
            connector = "└─" if is_last else "├─"
            content = node.content[:max_content_length].replace('\n', ' ')
            if len(node.content) > max_content_length:
                content += "..."
            lines.append(f"{prefix}{connector}{node.role.value[0].upper()} {node.id[-6:]} {content}")
            children = self.get_children(node.id)
            new_prefix = prefix + ("  " if is_last else "│ ")
            for i, child in enumerate(children):
                walk(child, new_prefix, i == len(children) - 1)

        roots = self.roots()
        for i, root in enumerate(roots):
            walk(root, "", i == len(roots) - 1)
        return '\n'.join(lines)

    def __repr__(self) -> str:
        return f"ConversationTree(nodes={len(self.nodes)}, roots={len(self.roots())})"
