"""
Contribution Log — Project Milestones
=======================================

A milestone commits the state of a whole project to the log.  The
project is a file tree:

    {
      "src": {"type": "folder", "children": {
          "app.js": {"type": "file", "content": "..."}}},
      "package.json": {"type": "file", "content": "{...}"}
    }

Its code hash is the SHA-256 hex digest of the tree's canonical JSON
(keys sorted at every level, compact separators, UTF-8).  Two trees with
the same files and contents always hash the same, whatever order their
keys were inserted in.  The digest is 64 characters, exactly the
longest code hash the log accepts.
"""

import hashlib
import json
from typing import Any, Dict


def validate_tree(tree: Dict[str, Any], path: str = "") -> None:
    """
    Check that every node is a file with string content or a folder.

    Raises ``ValueError`` naming the first malformed path.
    """
    if not isinstance(tree, dict):
        raise ValueError(f"{path or '/'}: expected a mapping of names to nodes")
    for name, node in tree.items():
        node_path = f"{path}/{name}"
        if not isinstance(node, dict):
            raise ValueError(f"{node_path}: node must be an object")
        kind = node.get("type")
        if kind == "file":
            if not isinstance(node.get("content", ""), str):
                raise ValueError(f"{node_path}: file content must be text")
        elif kind == "folder":
            validate_tree(node.get("children", {}), node_path)
        else:
            raise ValueError(f"{node_path}: unknown node type {kind!r}")


def canonical_json(tree: Dict[str, Any]) -> bytes:
    return json.dumps(
        tree, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def project_hash(tree: Dict[str, Any]) -> str:
    """Deterministic SHA-256 hex digest of a project file tree."""
    validate_tree(tree)
    return hashlib.sha256(canonical_json(tree)).hexdigest()
