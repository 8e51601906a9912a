from datetime import datetime, timedelta

from dedupe import CategoryIdentity, group_duplicates
from models import Category

T0 = datetime(2025, 1, 1, 12, 0)


def make_category(cid, name, color=None, user_id="u1", minutes=0) -> Category:
    return Category(
        id=cid,
        user_id=user_id,
        name=name,
        color=color,
        created_at=T0 + timedelta(minutes=minutes),
    )


def test_identity_trims_and_lowercases_name_and_color() -> None:
    a = make_category(1, "  Food ", "#FFF")
    b = make_category(2, "food", "#fff")
    assert CategoryIdentity.of(a) == CategoryIdentity.of(b)
    assert CategoryIdentity.of(a) == CategoryIdentity("u1", "food", "#fff")


def test_missing_owner_and_color_become_empty_strings() -> None:
    category = make_category(1, "Misc", color=None, user_id=None)
    assert CategoryIdentity.of(category) == CategoryIdentity("", "misc", "")


def test_groups_only_matching_owner_name_and_color() -> None:
    categories = [
        make_category(1, "Food", "#fff", minutes=0),
        make_category(2, "food", "#FFF", minutes=1),
        make_category(3, "Food", "#000", minutes=2),
        make_category(4, "Food", "#fff", user_id="u2", minutes=3),
        make_category(5, "Foods", "#fff", minutes=4),
        make_category(6, " FOOD", "#Fff", minutes=5),
    ]

    groups = group_duplicates(categories)

    assert len(groups) == 1
    assert groups[0].member_ids == (1, 2, 6)
    assert groups[0].owner == "u1"
    assert groups[0].name == "Food"


def test_survivor_is_earliest_created_regardless_of_input_order() -> None:
    categories = [
        make_category(10, "Rent", minutes=30),
        make_category(11, "rent", minutes=5),
        make_category(12, "RENT", minutes=20),
    ]

    (group,) = group_duplicates(categories)

    assert group.survivor_id == 11
    assert group.removal_ids == (12, 10)
    assert group.name == "rent"


def test_same_timestamp_falls_back_to_id_order() -> None:
    categories = [
        make_category(8, "Travel"),
        make_category(3, "travel"),
    ]

    (group,) = group_duplicates(categories)

    assert group.survivor_id == 3
    assert group.removal_ids == (8,)


def test_unique_categories_produce_no_groups() -> None:
    categories = [
        make_category(1, "Food"),
        make_category(2, "Rent"),
        make_category(3, "Food", user_id="u2"),
    ]
    assert group_duplicates(categories) == []


def test_owner_less_categories_group_together() -> None:
    categories = [
        make_category(1, "Misc", user_id=None, minutes=0),
        make_category(2, "misc", user_id="", minutes=1),
    ]

    (group,) = group_duplicates(categories)

    assert group.owner == ""
    assert group.member_ids == (1, 2)
