"""
Header dependencies and matching config validation.
"""

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from matchpool.deps import parse_actor_member_id, validate_admin_token
from matchpool.errors import InvalidMatchingConfigError
from matchpool.schemas import MatchingConfig, build_matching_config


def test_admin_token_must_match_configured_value():
    validate_admin_token("secret", "secret")
    for token, configured in [(None, "secret"), ("wrong", "secret"), ("secret", ""), ("", "")]:
        with pytest.raises(HTTPException) as exc:
            validate_admin_token(token, configured)
        assert exc.value.status_code == 401


def test_actor_member_id_is_trimmed_and_bounded():
    assert parse_actor_member_id("  A  ") == "A"
    for raw in [None, "", "   ", "x" * 129]:
        with pytest.raises(HTTPException) as exc:
            parse_actor_member_id(raw)
        assert exc.value.status_code == 400


def test_build_matching_config_validates_ranges():
    config = build_matching_config({"variety_weight": 0.9, "recency_days": 14})
    assert config == MatchingConfig(variety_weight=0.9, compatibility_weight=0.4, recency_days=14)

    with pytest.raises(InvalidMatchingConfigError):
        build_matching_config({"variety_weight": 1.5})
    with pytest.raises(InvalidMatchingConfigError):
        build_matching_config({"recency_days": 0})


def test_matching_config_is_immutable():
    config = MatchingConfig()
    with pytest.raises(ValidationError):
        config.variety_weight = 0.1
