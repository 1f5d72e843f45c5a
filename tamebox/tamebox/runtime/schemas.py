from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Union

from tamebox.runtime.errors import PolicyError


# -----------------------------
# Policy entries
# -----------------------------


@dataclass(frozen=True)
class Permit:
    """`true`: keep the property, tame its value by inheritance."""


@dataclass(frozen=True)
class PermitAccessorAware:
    """`"maybeAccessor"`: keep accessor pairs as well as plain values."""


@dataclass(frozen=True)
class InheritPermit:
    """`"*"`: keep here and on every object delegating to this one."""


@dataclass(frozen=True)
class Deny:
    """`false`: explicitly deny, suppressing an inherited `"*"`."""


@dataclass(frozen=True, eq=False)
class Nested:
    node: "PolicyNode"


PolicyEntry = Union[Permit, PermitAccessorAware, InheritPermit, Deny, Nested]

PERMIT = Permit()
PERMIT_ACCESSOR_AWARE = PermitAccessorAware()
INHERIT_PERMIT = InheritPermit()
DENY = Deny()

INHERIT_MARKER = "*"
ACCESSOR_MARKER = "maybeAccessor"


@dataclass(eq=False)
class PolicyNode:
    """Disposition of the properties of one primordial object."""

    entries: dict[str, PolicyEntry] = field(default_factory=dict)
    path: str = ""

    def get(self, name: str) -> PolicyEntry | None:
        return self.entries.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self.entries

    def __len__(self) -> int:
        return len(self.entries)


# -----------------------------
# Loading
# -----------------------------


def _require_dict(value: Any, path: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise PolicyError(f"Expected object at {path}, got {type(value).__name__}")
    return value


def _require_str(value: Any, path: str) -> str:
    if not isinstance(value, str):
        raise PolicyError(f"Expected string key at {path}, got {type(value).__name__}")
    return value


def _child_path(path: str, name: str) -> str:
    return name if path == "$" else f"{path}.{name}"


def load_policy(source: Mapping[str, Any] | str | Path) -> PolicyNode:
    """
    Load a policy document into a `PolicyNode` tree.

    `source` is either the decoded document or a path to a JSON file. Records
    shared by identity between several names load into one shared node.
    """
    if isinstance(source, (str, Path)):
        try:
            data = json.loads(Path(source).read_text(encoding="utf-8"))
        except OSError as exc:
            raise PolicyError(f"Cannot read policy document {source}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise PolicyError(f"Policy document {source} is not valid JSON: {exc}") from exc
    else:
        data = source

    root_record = _require_dict(data, "$")
    memo: dict[int, PolicyNode] = {}
    root = PolicyNode(path="$")
    memo[id(root_record)] = root

    # Work-list of (record, node-to-fill, path); avoids recursion on deep documents.
    pending: list[tuple[Mapping[str, Any], PolicyNode, str]] = [(root_record, root, "$")]
    while pending:
        record, node, path = pending.pop()
        if INHERIT_MARKER in record:
            raise PolicyError(
                f"{path}: a property cannot be both inherited ('*') and described by a nested record"
            )
        for raw_name, value in record.items():
            name = _require_str(raw_name, path)
            child_path = _child_path(path, name)
            if value is True:
                node.entries[name] = PERMIT
            elif value is False:
                node.entries[name] = DENY
            elif value == INHERIT_MARKER:
                node.entries[name] = INHERIT_PERMIT
            elif value == ACCESSOR_MARKER:
                node.entries[name] = PERMIT_ACCESSOR_AWARE
            elif isinstance(value, Mapping):
                child = memo.get(id(value))
                if child is None:
                    child = PolicyNode(path=child_path)
                    memo[id(value)] = child
                    pending.append((value, child, child_path))
                node.entries[name] = Nested(child)
            else:
                raise PolicyError(
                    f"Invalid policy value at {child_path}: {value!r}. "
                    f"Allowed: true, false, {INHERIT_MARKER!r}, {ACCESSOR_MARKER!r} or an object"
                )
    return root


def count_entries(root: PolicyNode) -> int:
    """Number of distinct named entries across the (possibly shared) policy tree."""
    seen: set[int] = set()
    total = 0
    stack = [root]
    while stack:
        node = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))
        total += len(node)
        for entry in node.entries.values():
            if isinstance(entry, Nested):
                stack.append(entry.node)
    return total
