import json
from pathlib import Path

import pytest

from gateway_provisioner.email_policy import DEFAULT_EMAIL, EmailRotationPolicy, load_email_list

POOL = ("a@x.com", "b@x.com", "c@x.com")


def test_single_strategy_always_returns_the_single_address() -> None:
    policy = EmailRotationPolicy(strategy="single", addresses=POOL, single_address="ops@x.com")

    assert [policy.select(i) for i in range(3)] == ["ops@x.com"] * 3


def test_loop_strategy_rotates_through_the_whole_list() -> None:
    policy = EmailRotationPolicy(strategy="loop", addresses=POOL)

    assert [policy.select(i) for i in range(5)] == ["a@x.com", "b@x.com", "c@x.com", "a@x.com", "b@x.com"]


def test_n_times_strategy_rotates_through_the_first_n() -> None:
    policy = EmailRotationPolicy(strategy="n-times", addresses=POOL, n=2)

    assert [policy.select(i) for i in range(4)] == ["a@x.com", "b@x.com", "a@x.com", "b@x.com"]
    assert policy.describe() == "first 2 emails (requested 2)"


def test_empty_pool_falls_back_to_default_address() -> None:
    assert EmailRotationPolicy(strategy="loop").select(7) == DEFAULT_EMAIL
    assert EmailRotationPolicy(strategy="single", single_address="").select(0) == DEFAULT_EMAIL


def test_invalid_policies_are_rejected() -> None:
    with pytest.raises(ValueError):
        EmailRotationPolicy(strategy="random")
    with pytest.raises(ValueError):
        EmailRotationPolicy(strategy="n-times", n=0)


def test_load_email_list_keeps_only_addresses(tmp_path: Path) -> None:
    path = tmp_path / "emails.json"
    path.write_text(json.dumps([" a@x.com ", "not-an-email", 42, None, "b@x.com"]), encoding="utf-8")

    assert load_email_list(path) == ["a@x.com", "b@x.com"]


def test_load_email_list_tolerates_missing_or_malformed_files(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    mapping = tmp_path / "mapping.json"
    mapping.write_text(json.dumps({"a": "a@x.com"}), encoding="utf-8")

    assert load_email_list(tmp_path / "missing.json") == []
    assert load_email_list(broken) == []
    assert load_email_list(mapping) == []
