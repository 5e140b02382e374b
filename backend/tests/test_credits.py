"""Tests for credit estimation and usage calculation."""

from buildable.core.credits import (
    MIN_ESTIMATED_FILES,
    OUTPUT_TOKENS_PER_FILE,
    calculate_credits,
    complexity_for,
    estimate_credits,
)
from buildable.models.credits import Complexity


class TestCalculateCredits:

    def test_no_tokens_costs_nothing(self):
        assert calculate_credits(0) == 0
        assert calculate_credits(-5) == 0

    def test_rounds_up(self):
        assert calculate_credits(1, Complexity.LOW) == 1
        assert calculate_credits(1000, Complexity.LOW) == 1
        assert calculate_credits(1001, Complexity.LOW) == 2

    def test_complexity_multiplier(self):
        assert calculate_credits(10_000, Complexity.LOW) == 10
        assert calculate_credits(10_000, Complexity.MEDIUM) == 15
        assert calculate_credits(10_000, Complexity.HIGH) == 20

    def test_cost_multiplier(self):
        assert calculate_credits(10_000, Complexity.LOW, cost_multiplier=0.01) == 100


class TestComplexity:

    def test_buckets(self):
        assert complexity_for(4_999) == Complexity.LOW
        assert complexity_for(5_000) == Complexity.MEDIUM
        assert complexity_for(20_000) == Complexity.MEDIUM
        assert complexity_for(20_001) == Complexity.HIGH


class TestEstimateCredits:

    def test_new_project_budgets_minimum_files(self):
        estimate = estimate_credits("a" * 400)

        assert estimate.estimated_tokens == 100 + MIN_ESTIMATED_FILES * OUTPUT_TOKENS_PER_FILE
        assert estimate.complexity == Complexity.MEDIUM
        assert estimate.estimated_credits == 12

    def test_deterministic(self):
        assert estimate_credits("Build a blog", 3) == estimate_credits("Build a blog", 3)

    def test_non_decreasing_in_prompt_length(self):
        credits = [estimate_credits("x" * n, 2).estimated_credits for n in range(0, 40_000, 997)]

        assert credits == sorted(credits)

    def test_non_decreasing_in_file_count(self):
        credits = [estimate_credits("Build a shop", n).estimated_credits for n in range(0, 40)]
        tokens = [estimate_credits("Build a shop", n).estimated_tokens for n in range(0, 40)]

        assert credits == sorted(credits)
        assert tokens == sorted(tokens)

    def test_negative_file_count_treated_as_zero(self):
        assert estimate_credits("Build", -3) == estimate_credits("Build", 0)
