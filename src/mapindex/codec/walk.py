"""Explicit-stack traversal of JSON-like trees.

Map documents can be arbitrarily deep (and adversarial), so none of these
helpers recurse.  Array items inherit the key of the array that holds them.
"""

from __future__ import annotations

from typing import Any, Callable, Iterator

KeyFn = Callable[[str], str]
LeafFn = Callable[[Any, "str | None"], Any]


def transform(
    tree: Any,
    key_fn: KeyFn | None = None,
    leaf_fn: LeafFn | None = None,
) -> Any:
    """Return a rebuilt copy of *tree* with keys and leaves mapped.

    ``key_fn`` must be injective or keys will collide.  ``leaf_fn`` receives
    every non-container value together with its parent key as it appears in
    the input tree (``None`` at the top level).
    """
    holder: list[Any] = [None]
    # (value, parent key, container to fill, slot in container)
    stack: list[tuple[Any, str | None, Any, Any]] = [(tree, None, holder, 0)]

    while stack:
        value, parent_key, container, slot = stack.pop()
        if isinstance(value, dict):
            out: dict[str, Any] = {}
            container[slot] = out
            for key, child in value.items():
                new_key = key_fn(key) if key_fn is not None else key
                out[new_key] = None  # reserve position to keep key order
                stack.append((child, key, out, new_key))
        elif isinstance(value, (list, tuple)):
            items: list[Any] = [None] * len(value)
            container[slot] = items
            for index, child in enumerate(value):
                stack.append((child, parent_key, items, index))
        else:
            container[slot] = leaf_fn(value, parent_key) if leaf_fn is not None else value

    return holder[0]


def iter_leaves(tree: Any) -> Iterator[tuple[Any, str | None]]:
    """Yield ``(leaf, parent_key)`` pairs in document order (pre-order)."""
    stack: list[tuple[Any, str | None]] = [(tree, None)]
    while stack:
        value, parent_key = stack.pop()
        if isinstance(value, dict):
            stack.extend(reversed([(child, key) for key, child in value.items()]))
        elif isinstance(value, (list, tuple)):
            stack.extend(reversed([(child, parent_key) for child in value]))
        else:
            yield value, parent_key
