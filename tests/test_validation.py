"""Tests for snapshot validation and progress calculation."""
from qa_workflow.models.content import Article, TextBlock
from qa_workflow.models.enums import ValidationTier
from qa_workflow.services.rules import ScenarioKey, TranslationAttribute, TranslationConfig, derive_rules
from qa_workflow.services.validation import (
    ItemSnapshot,
    ProgressEvaluator,
    applicable_fields,
    calculate_progress,
    invalid_fields,
    snapshot_item,
    validate,
)

STEPS = {"1": ["a", "b", "c"]}
REQUIREMENTS = {"draft": ["a"], "reviewable": ["a", "b"], "publishable": ["a", "b", "c"]}


def make_snapshot(values, qa_flags=None):
    return ItemSnapshot(values=values, rules=derive_rules(STEPS, REQUIREMENTS), qa_flags=qa_flags or {})


class TestValidate:
    """Validation of a snapshot in a scenario."""

    def test_required_field_reports_blank(self):
        snapshot = make_snapshot({"id": 1, "a": "", "b": "x"})

        errors = validate(snapshot, ScenarioKey.for_status("draft"))

        assert errors == {"a": ["a cannot be blank."]}

    def test_messages_are_translated(self):
        snapshot = make_snapshot({"id": 1})

        errors = validate(snapshot, ScenarioKey.for_status("draft"), locale="es")

        assert errors["a"] == ["a no puede estar vacío."]

    def test_safe_rules_never_fail(self):
        snapshot = make_snapshot({"id": 1})

        assert invalid_fields(snapshot, ScenarioKey.for_step("1", "temporary")) == frozenset()

    def test_status_check_uses_permission_flags(self):
        denied = make_snapshot({"id": 1}, {"allow_review": False})
        allowed = make_snapshot({"id": 1}, {"allow_review": True})
        scenario = ScenarioKey.for_status_check(ValidationTier.REVIEWABLE)

        assert validate(denied, scenario) == {"status": ["Reviewing not marked as allowed"]}
        assert validate(allowed, scenario) == {}

    def test_rules_outside_the_scenario_are_ignored(self):
        snapshot = make_snapshot({"id": 1, "a": "x"})

        assert invalid_fields(snapshot, ScenarioKey.for_step("1", "draft")) == frozenset()
        assert invalid_fields(snapshot, ScenarioKey.for_step("1", "publishable")) == {"b", "c"}


class TestProgress:
    """Percentage of a scenario's fields that validate."""

    def test_progress_is_rounded_down(self):
        snapshot = make_snapshot({"id": 1, "a": "x"})

        assert calculate_progress(snapshot, ScenarioKey.for_step_progress("1")) == 33

    def test_complete_scenario_is_100(self):
        snapshot = make_snapshot({"id": 1, "a": "x", "b": "y", "c": "z"})

        assert calculate_progress(snapshot, ScenarioKey.for_status("publishable")) == 100

    def test_scenario_without_applicable_fields_is_complete(self):
        snapshot = make_snapshot({"id": 1})
        scenario = ScenarioKey.for_step("1", "temporary")

        assert applicable_fields(snapshot, scenario) == []
        assert calculate_progress(snapshot, scenario) == 100

    def test_nothing_translatable_means_zero_translation_progress(self):
        """
        INVARIANT: no currently translatable field → 0% for every language.
        """
        config = TranslationConfig.from_values({"a": TranslationAttribute()}, {"a": None})
        snapshot = ItemSnapshot(
            values={"id": 7, "a": None},
            rules=derive_rules(STEPS, REQUIREMENTS, config, ["es", "sv"]),
        )

        for lang in ("es", "sv"):
            assert calculate_progress(snapshot, ScenarioKey.for_translation(lang)) == 0

    def test_evaluator_memoizes_per_scenario(self):
        evaluator = ProgressEvaluator(make_snapshot({"id": 1, "a": "x"}))
        scenario = ScenarioKey.for_status("reviewable")

        assert evaluator.progress(scenario) == 50
        evaluator.snapshot.values["b"] = "y"
        assert evaluator.progress(scenario) == 50
        # Other scenarios see the new value
        assert evaluator.progress(ScenarioKey.for_status("publishable")) == 66

    def test_evaluator_lists_invalid_fields_in_rule_order(self):
        evaluator = ProgressEvaluator(make_snapshot({"id": 1, "b": "y"}))

        assert evaluator.invalid_fields(ScenarioKey.for_status("publishable")) == ["a", "c"]


class TestItemSnapshots:
    """Snapshots built from content items."""

    LANGUAGES = ["es"]

    def test_snapshot_includes_translated_variants(self):
        article = Article(title="Wolves")
        article.set_translation("title", "es", "Lobos")

        snapshot = snapshot_item(article, self.LANGUAGES)

        assert snapshot.values["title"] == "Wolves"
        assert snapshot.values["title_es"] == "Lobos"
        assert invalid_fields(snapshot, ScenarioKey.for_translation("es")) == frozenset()

    def test_untranslated_field_fails_translation(self):
        article = Article(title="Wolves", about="Packs")
        article.set_translation("title", "es", "Lobos")

        snapshot = snapshot_item(article, self.LANGUAGES)

        assert invalid_fields(snapshot, ScenarioKey.for_translation("es")) == {"about_es"}
        assert calculate_progress(snapshot, ScenarioKey.for_translation("es")) == 50

    def test_article_without_content_has_zero_translation_progress(self):
        snapshot = snapshot_item(Article(), self.LANGUAGES)

        assert calculate_progress(snapshot, ScenarioKey.for_translation("es")) == 0

    def test_related_block_is_validated_with_its_own_rules(self):
        block = TextBlock(heading="Facts", text="Wolves howl.")
        article = Article(title="Wolves", lead_block=block)
        article.set_translation("title", "es", "Lobos")
        scenario = ScenarioKey.for_translation("es")

        assert invalid_fields(snapshot_item(article, self.LANGUAGES), scenario) == {"lead_block"}

        block.set_translation("heading", "es", "Datos")
        block.set_translation("text", "es", "Los lobos aúllan.")

        assert invalid_fields(snapshot_item(article, self.LANGUAGES), scenario) == frozenset()

    def test_permission_flags_come_from_qa_state(self):
        article = Article(title="Wolves")

        assert snapshot_item(article).qa_flags == {}
