"""
Element identity — a stable key for "the same" element across selections.
"""

from __future__ import annotations

import hashlib

KEY_PREFIX = "el-"
KEY_HEX_CHARS = 16


def derive_key(element) -> str:
    """Return the bead key for an element descriptor.

    The key depends only on tag, id, the set of class names and the
    selector, so reordering classes in the DOM does not split history.
    Missing fields count as empty strings; this never raises.
    """
    tag = getattr(element, "tag", None) or ""
    element_id = getattr(element, "id", None) or ""
    classes = getattr(element, "classes", None) or ()
    selector = getattr(element, "selector", None) or ""

    material = "|".join([
        str(tag),
        str(element_id),
        ".".join(sorted({str(c) for c in classes})),
        str(selector),
    ])
    digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
    return f"{KEY_PREFIX}{digest[:KEY_HEX_CHARS]}"
