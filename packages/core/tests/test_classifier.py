"""Tests for participant classification."""

from datetime import datetime, timedelta, timezone

import pytest

from prcycle_core.classifier import (
    DEFAULT_CLASSIFIER_CONFIG,
    IS_AUTOMATED,
    ClassifierConfig,
    ai_comment_ratio,
    classify,
    matches_ai_handle,
)
from prcycle_core.models import Role

CREATED = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

GENERATED = "## Summary\nThe change looks fine overall."
PLAIN = "lgtm, small nit on naming"


class TestCIExclusion:
    def test_builtin_ci_account(self):
        assert classify("github-actions[bot]") is Role.SYSTEM

    def test_ci_match_is_case_insensitive_substring(self):
        assert classify("Jenkins-Prod") is Role.SYSTEM

    def test_bot_handle_that_is_a_ci_account_is_system(self):
        config = ClassifierConfig(ci_accounts=("release-bot",))
        assert matches_ai_handle("release-bot")
        assert classify("release-bot", config) is Role.SYSTEM

    def test_ci_wins_over_allow_list(self):
        config = ClassifierConfig(ai_reviewers=frozenset({"jenkins"}))
        assert classify("jenkins", config) is Role.SYSTEM


class TestAllowList:
    def test_listed_handle_is_ai(self):
        config = DEFAULT_CLASSIFIER_CONFIG.with_ai_reviewer("reviewer-x")
        assert classify("reviewer-x", config) is Role.AI_REVIEWER

    def test_add_returns_new_config(self):
        config = DEFAULT_CLASSIFIER_CONFIG.with_ai_reviewer("reviewer-x")
        assert "reviewer-x" not in DEFAULT_CLASSIFIER_CONFIG.ai_reviewers
        assert classify("reviewer-x") is Role.HUMAN_REVIEWER
        assert classify("reviewer-x", config) is Role.AI_REVIEWER

    def test_remove_returns_new_config(self):
        config = ClassifierConfig(ai_reviewers=frozenset({"a", "b"}))
        smaller = config.without_ai_reviewer("a")
        assert smaller.ai_reviewers == frozenset({"b"})
        assert config.ai_reviewers == frozenset({"a", "b"})

    def test_allow_list_disables_content_and_length_heuristics(self):
        config = ClassifierConfig(ai_reviewers=frozenset({"someone-else"}))
        role = classify("carol", config, sample_comments=[GENERATED] * 5, average_comment_length=900)
        assert role is Role.HUMAN_REVIEWER

    def test_allow_list_keeps_handle_patterns(self):
        config = ClassifierConfig(ai_reviewers=frozenset({"someone-else"}))
        assert classify("coderabbitai[bot]", config) is Role.AI_REVIEWER


class TestHandlePatterns:
    @pytest.mark.parametrize(
        "handle",
        ["sonar-bot", "bot_reviewer", "coderabbitai[bot]", "my-ai-reviewer", "ai_helper", "team-ai", "copilot"],
    )
    def test_matches(self, handle):
        assert classify(handle) is Role.AI_REVIEWER

    @pytest.mark.parametrize("handle", ["robot", "botany", "aiden", "said", "alice"])
    def test_does_not_match(self, handle):
        assert classify(handle) is Role.HUMAN_REVIEWER


class TestContentPattern:
    def test_majority_of_generated_comments_is_ai(self):
        samples = [GENERATED, GENERATED, GENERATED, PLAIN, PLAIN]
        assert ai_comment_ratio(samples) == pytest.approx(0.6)
        assert classify("carol", sample_comments=samples, average_comment_length=40) is Role.AI_REVIEWER

    def test_exactly_half_is_not_enough(self):
        samples = [GENERATED, GENERATED, PLAIN, PLAIN]
        assert classify("carol", sample_comments=samples, average_comment_length=40) is Role.HUMAN_REVIEWER

    def test_banner_and_emoji_signatures(self):
        samples = ["📋 Code Review\nnothing blocking", "🐛 off-by-one in loop"]
        assert ai_comment_ratio(samples) == 1.0

    def test_empty_sample_ratio(self):
        assert ai_comment_ratio([]) == 0.0


class TestLengthHeuristic:
    def test_long_average_is_ai(self):
        assert classify("carol", average_comment_length=300) is Role.AI_REVIEWER

    def test_just_below_threshold_is_human(self):
        assert classify("carol", average_comment_length=299) is Role.HUMAN_REVIEWER


class TestTimeWindow:
    def test_disabled_by_default(self):
        role = classify("carol", comment_at=CREATED + timedelta(minutes=1), change_created_at=CREATED)
        assert role is Role.HUMAN_REVIEWER

    def test_comment_inside_window_is_ai(self):
        config = ClassifierConfig(time_window_minutes=10)
        role = classify("carol", config, comment_at=CREATED + timedelta(minutes=5), change_created_at=CREATED)
        assert role is Role.AI_REVIEWER

    def test_comment_after_window_is_human(self):
        config = ClassifierConfig(time_window_minutes=10)
        role = classify("carol", config, comment_at=CREATED + timedelta(minutes=15), change_created_at=CREATED)
        assert role is Role.HUMAN_REVIEWER

    def test_comment_before_creation_is_human(self):
        config = ClassifierConfig(time_window_minutes=10)
        role = classify("carol", config, comment_at=CREATED - timedelta(minutes=1), change_created_at=CREATED)
        assert role is Role.HUMAN_REVIEWER


def test_fallback_is_human_reviewer():
    assert classify("dave") is Role.HUMAN_REVIEWER


def test_automation_table_covers_every_role():
    assert set(IS_AUTOMATED) == set(Role)
    assert IS_AUTOMATED[Role.AI_REVIEWER] and IS_AUTOMATED[Role.SYSTEM]
    assert not IS_AUTOMATED[Role.AUTHOR] and not IS_AUTOMATED[Role.HUMAN_REVIEWER]
