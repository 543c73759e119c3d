import pytest

from tokendealer import (
    AlwaysWait,
    MaxWaitPolicy,
    NeverWait,
    UsageRecord,
    WaitPolicy,
    choose_token,
    coerce_wait_policy,
)
from tokendealer.policies import FunctionalWaitPolicy


def test_prefers_lowest_inflight():
    snap = {
        "A": UsageRecord(inflight=1),
        "B": UsageRecord(inflight=0),
        "C": UsageRecord(inflight=0),
    }
    chosen = choose_token(["A", "B", "C"], snap)
    assert chosen.token == "B"
    assert chosen.usage is snap["B"]
    assert chosen.overall_usage is snap


def test_ties_keep_earlier_token():
    snap = {t: UsageRecord(inflight=2) for t in "ABC"}
    assert choose_token(["C", "A", "B"], snap).token == "C"


def test_non_exhausted_beats_exhausted():
    snap = {
        "A": UsageRecord(exhausted=True, reset_at=5.0),
        "B": UsageRecord(inflight=10),
        "C": UsageRecord(exhausted=True, reset_at=1.0),
    }
    assert choose_token(["A", "B", "C"], snap).token == "B"
    assert choose_token(["B", "A"], snap).token == "B"


def test_all_exhausted_prefers_earliest_reset():
    snap = {
        "A": UsageRecord(exhausted=True, reset_at=20.0),
        "B": UsageRecord(exhausted=True, reset_at=10.0),
        "C": UsageRecord(exhausted=True, reset_at=10.0),
    }
    chosen = choose_token(["A", "B", "C"], snap)
    assert chosen.token == "B"
    assert chosen.usage.exhausted


def test_choose_token_rejects_empty_list():
    with pytest.raises(ValueError):
        choose_token([], {})


def test_coerce_wait_policy():
    assert isinstance(coerce_wait_policy(None), NeverWait)
    assert isinstance(coerce_wait_policy(False), NeverWait)
    assert isinstance(coerce_wait_policy(True), AlwaysWait)
    pol = MaxWaitPolicy(1.0)
    assert coerce_wait_policy(pol) is pol
    assert isinstance(coerce_wait_policy(lambda token, wait: True), FunctionalWaitPolicy)
    with pytest.raises(TypeError):
        coerce_wait_policy("forever")


def test_functional_wait_policy_signatures():
    seen = []

    def with_token(token, wait):
        seen.append((token, wait))
        return wait < 1

    pol = coerce_wait_policy(with_token)
    assert pol.should_wait("A", 0.5) is True
    assert pol.should_wait("A", 2.0) is False
    assert seen == [("A", 0.5), ("A", 2.0)]

    only_wait = coerce_wait_policy(lambda wait: wait < 1)
    assert only_wait.should_wait("A", 0.5) is True


def test_max_wait_policy():
    pol = MaxWaitPolicy(2.0)
    assert pol.should_wait("A", 2.0)
    assert not pol.should_wait("A", 2.5)
    with pytest.raises(ValueError):
        MaxWaitPolicy(-1)


def test_base_policy_never_waits():
    assert WaitPolicy().should_wait("A", 0.0) is False


def test_ints_coerce_like_bools():
    assert isinstance(coerce_wait_policy(1), AlwaysWait)
    assert isinstance(coerce_wait_policy(0), NeverWait)
