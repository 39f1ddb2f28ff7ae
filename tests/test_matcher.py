import math

import pytest

from core.inference.matcher import EnrolledDescriptor, find_best_match, pick_best, rank_matches, similarity


def test_identical_descriptors_score_one():
    descriptor = [0.12, -0.4, 0.33, 0.05]
    assert similarity(descriptor, descriptor) == pytest.approx(1.0)


def test_similarity_is_symmetric_and_bounded():
    a = [0.0, 0.0, 0.0]
    b = [0.3, 0.4, 0.0]  # distance 0.5

    assert similarity(a, b) == pytest.approx(1 - 0.5 / 1.2)
    assert similarity(a, b) == similarity(b, a)
    assert similarity(a, [5.0, 5.0, 5.0]) == 0.0


@pytest.mark.parametrize(
    "other",
    [[], [0.1, 0.2], None, "0.1,0.2,0.3", [0.1, float("nan"), 0.3], [[0.1, 0.2, 0.3]], ["a", "b", "c"]],
)
def test_malformed_descriptors_score_zero(other):
    assert similarity([0.1, 0.2, 0.3], other) == 0.0


def test_best_match_must_exceed_threshold():
    observed = [0.0, 0.0]
    enrolled = [
        EnrolledDescriptor("far", [1.0, 1.0]),
        EnrolledDescriptor("near", [0.1, 0.0]),
    ]

    match = find_best_match(observed, enrolled)

    assert match.student_id == "near"
    assert match.similarity == pytest.approx(1 - 0.1 / 1.2)


def test_score_equal_to_threshold_is_not_a_match():
    # distance 0.42 -> similarity exactly 0.65
    enrolled = [EnrolledDescriptor("edge", [0.42, 0.0])]

    assert math.isclose(similarity([0.0, 0.0], [0.42, 0.0]), 0.65)
    assert find_best_match([0.0, 0.0], enrolled, min_similarity=similarity([0.0, 0.0], [0.42, 0.0])) is None


def test_ties_keep_the_first_candidate():
    enrolled = [EnrolledDescriptor("first", [0.1, 0.0]), EnrolledDescriptor("second", [-0.1, 0.0])]

    assert find_best_match([0.0, 0.0], enrolled).student_id == "first"


def test_no_candidates_or_bad_input_is_no_match():
    assert find_best_match([0.0, 0.0], []) is None
    assert find_best_match(None, [EnrolledDescriptor("a", [0.0, 0.0])]) is None
    assert find_best_match([0.0, 0.0], [EnrolledDescriptor("a", [0.0, 0.0, 0.0])]) is None


def test_rank_matches_orders_best_first():
    enrolled = [
        EnrolledDescriptor("mid", [0.3, 0.0]),
        EnrolledDescriptor("best", [0.0, 0.0]),
        EnrolledDescriptor("worst", [0.9, 0.0]),
    ]

    ranked = rank_matches([0.0, 0.0], enrolled)

    assert [match.student_id for match in ranked] == ["best", "mid", "worst"]


def test_pick_best_agrees_with_find_best_match():
    enrolled = [
        EnrolledDescriptor("first", [0.1, 0.0]),
        EnrolledDescriptor("second", [-0.1, 0.0]),
        EnrolledDescriptor("far", [0.8, 0.0]),
    ]

    ranked = rank_matches([0.0, 0.0], enrolled)

    assert pick_best(ranked) == find_best_match([0.0, 0.0], enrolled)
    assert pick_best(ranked).student_id == "first"
    assert pick_best(ranked, min_similarity=ranked[0].similarity) is None
    assert pick_best([]) is None
