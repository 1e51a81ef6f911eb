from schemas.intents import CloneModifications, ItemAddition, ItemUpdate
from services.review.modifications import (
    apply_clone,
    combine_for_merge,
    keyword_match_tier,
    matches_keyword,
)


def _items(*pairs):
    return [
        {"description": d, "quantity": 1, "unit": "job", "rate": t, "total": t}
        for d, t in pairs
    ]


def test_keyword_matching_tiers():
    assert keyword_match_tier("Rush fee", "rush fee") == "substring"
    assert keyword_match_tier("Installation work", "install") == "substring"
    assert keyword_match_tier("Painting walls", "paint job") == "word_prefix"
    assert keyword_match_tier("Materials", "labor") is None
    assert keyword_match_tier("Anything", "  ") is None


def test_keyword_matching_is_loose_for_spoken_phrases():
    assert matches_keyword("Installation work", "work charge")
    assert matches_keyword("Delivery fee", "the fee")
    assert not matches_keyword("Materials", "rush fee")


def test_clone_remove_keeps_other_items(make_document):
    source = make_document(line_items=_items(("Materials", 300), ("Rush fee", 75)))
    preview = apply_clone(source, CloneModifications(remove_items=["rush fee"]))
    assert [i.description for i in preview.items] == ["Materials"]
    assert preview.items[0].total == 300
    assert preview.subtotal == 300
    assert preview.total == 300


def test_clone_without_modifications_copies_items(make_document):
    source = make_document(line_items=_items(("Labor", 400), ("Paint", 100)))
    preview = apply_clone(source, None)
    assert [i.total for i in preview.items] == [400, 100]
    assert preview.total == 500
    assert all(i.id for i in preview.items)


def test_clone_update_changes_matching_item(make_document):
    source = make_document(line_items=_items(("Labor", 400), ("Paint", 100)))
    mods = CloneModifications(update_items=[ItemUpdate(match="paint", new_rate=150)])
    preview = apply_clone(source, mods)
    assert [i.total for i in preview.items] == [400, 150]
    assert preview.total == 550


def test_clone_new_amount_replaces_first_rate(make_document):
    source = make_document(line_items=_items(("Lawn care", 500)))
    preview = apply_clone(source, CloneModifications(new_amount=800))
    assert preview.items[0].rate == 800
    assert preview.total == 800


def test_clone_add_items_and_new_total(make_document):
    source = make_document(line_items=_items(("Labor", 400)))
    mods = CloneModifications(
        add_items=[ItemAddition(description="Cleanup", quantity=2, rate=25)],
        new_total=420,
    )
    preview = apply_clone(source, mods)
    assert [i.description for i in preview.items] == ["Labor", "Cleanup"]
    assert preview.subtotal == 450
    assert preview.total == 420


def test_merge_concatenates_in_selection_order(make_document):
    first = make_document(line_items=_items(("Labor", 100), ("Paint", 250)))
    second = make_document(line_items=_items(("Labor", 50)))
    preview = combine_for_merge([first, second])
    assert len(preview.items) == 3
    assert [i.total for i in preview.items] == [100, 250, 50]
    assert preview.subtotal == 400
    assert preview.total == 400
    assert len({i.id for i in preview.items}) == 3
