from __future__ import annotations

from features.beads import derive_key
from models.schemas import ElementDescriptor


def test_class_order_does_not_change_key() -> None:
    a = ElementDescriptor(tag="div", id="hero", classes=("a", "b", "c"), selector=".hero")
    b = ElementDescriptor(tag="div", id="hero", classes=("c", "a", "b"), selector=".hero")
    assert derive_key(a) == derive_key(b)


def test_duplicate_classes_compare_as_set() -> None:
    a = ElementDescriptor(tag="div", classes=("a", "b"))
    b = ElementDescriptor(tag="div", classes=("b", "a", "a"))
    assert derive_key(a) == derive_key(b)


def test_empty_descriptor_yields_well_formed_key() -> None:
    key = derive_key(ElementDescriptor())
    assert key.startswith("el-")
    assert len(key) == len("el-") + 16
    int(key[3:], 16)


def test_missing_attributes_are_treated_as_empty() -> None:
    class Bare:
        tag = "span"

    assert derive_key(Bare()) == derive_key(ElementDescriptor(tag="span"))
    assert derive_key(None) == derive_key(ElementDescriptor())


def test_key_is_stable_across_runs() -> None:
    element = ElementDescriptor(tag="button", id="buy", classes=("btn-primary", "btn"), selector="#buy")
    assert derive_key(element) == derive_key(element)
    assert derive_key(element) != derive_key(ElementDescriptor(tag="button", id="buy", selector="#buy"))


def test_any_field_changes_key() -> None:
    base = ElementDescriptor(tag="a", id="x", classes=("k",), selector="a#x")
    variants = [
        ElementDescriptor(tag="b", id="x", classes=("k",), selector="a#x"),
        ElementDescriptor(tag="a", id="y", classes=("k",), selector="a#x"),
        ElementDescriptor(tag="a", id="x", classes=("j",), selector="a#x"),
        ElementDescriptor(tag="a", id="x", classes=("k",), selector="a#y"),
    ]
    assert len({derive_key(v) for v in variants} | {derive_key(base)}) == 5
