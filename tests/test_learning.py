"""Tests for the learning strategies, the engine and pattern consolidation."""

from __future__ import annotations

import json

import pytest

from stylebridge.errors import ValidationError
from stylebridge.learning.base import push_words
from stylebridge.learning.consolidator import (
    PatternConsolidator,
    SuggestedAdjustments,
    apply_damped,
    compress_target,
    is_due,
)
from stylebridge.learning.constraints import ExtractedConstraints, merge_constraints
from stylebridge.learning.diff import (
    ACTIVATION_SUPPORT,
    compute_word_diff,
    is_material_change,
    learn_from_diff,
    tokenize,
)
from stylebridge.learning.engine import LearningEngine
from stylebridge.learning.feedback import apply_feedback, validate_tags
from stylebridge.llm.client import ClaudeClient
from stylebridge.style.models import (
    BaseStyle,
    DecisionKind,
    DocumentAdjustments,
    DocumentPreferences,
    EditDecision,
    LearnedRule,
    PatternKind,
    RuleSource,
)
from tests.conftest import make_auth_error, make_mock_response, script

SUGGESTED = "We utilize the framework to process data."
USER_VERSION = "We use the framework to process data."


def _decision(
    kind: DecisionKind = DecisionKind.REJECTED,
    suggested: str = SUGGESTED,
    final: str = USER_VERSION,
    document_id: str = "doc-1",
) -> EditDecision:
    return EditDecision(
        document_id=document_id,
        paragraph_index=0,
        original_text="We make use of the framework in order to process data.",
        suggested_text=suggested,
        final_text=final,
        decision=kind,
    )


def _record(engine: LearningEngine, prefs: DocumentPreferences, decision: EditDecision, tags=()):
    return engine.record(prefs, decision, tags, style=BaseStyle())


# ---------------------------------------------------------------------------
# Explicit feedback
# ---------------------------------------------------------------------------


class TestExplicitFeedback:
    def test_tags_nudge_sliders_and_add_rules(self) -> None:
        adjustments, insights = apply_feedback(
            DocumentAdjustments(),
            ["too_formal", "too_verbose"],
            suggested="x" * 300,
            user_version="y",
        )

        assert adjustments.formality_adjust == -0.5
        assert adjustments.verbosity_adjust == -0.5
        rules = {r.rule: r for r in adjustments.learned_rules}
        assert rules["Use a more casual, conversational tone"].confidence == 0.85
        assert rules["Use a more casual, conversational tone"].source is RuleSource.EXPLICIT
        assert len(adjustments.edit_examples[-1].suggested_edit) == 200
        assert adjustments.edit_examples[-1].feedback == ["too_formal", "too_verbose"]
        assert insights[0] == "Learned from explicit feedback: too_formal, too_verbose"

    def test_nudges_are_clamped(self) -> None:
        adjustments, _ = apply_feedback(
            DocumentAdjustments(formality_adjust=-1.8),
            ["too_formal"],
            suggested="a",
            user_version="b",
        )
        assert adjustments.formality_adjust == -2.0

    def test_similar_rule_is_boosted(self) -> None:
        start = DocumentAdjustments(
            learned_rules=[
                LearnedRule(rule="Make MINIMAL changes - preserve original phrasing", confidence=0.85)
            ]
        )
        once, _ = apply_feedback(start, ["over_edited"], suggested="a", user_version="b")
        twice, _ = apply_feedback(once, ["over_edited"], suggested="a", user_version="b")

        assert len(twice.learned_rules) == 1
        assert twice.learned_rules[0].confidence == pytest.approx(0.95)
        # input untouched
        assert start.learned_rules[0].confidence == 0.85

    def test_unknown_tag_rejected(self) -> None:
        with pytest.raises(ValidationError, match="not_a_tag"):
            validate_tags(["too_formal", "not_a_tag"])

    def test_examples_keep_last_five(self) -> None:
        adjustments = DocumentAdjustments()
        for i in range(7):
            adjustments, _ = apply_feedback(adjustments, ["other"], suggested=str(i), user_version="v")
        assert [e.suggested_edit for e in adjustments.edit_examples] == ["2", "3", "4", "5", "6"]


# ---------------------------------------------------------------------------
# Word diff
# ---------------------------------------------------------------------------


class TestWordDiff:
    def test_tokenize(self) -> None:
        assert tokenize("We utilize, the FRAMEWORK! to do it.") == ["utilize", "the", "framework"]

    def test_material_change_ignores_case_and_punctuation(self) -> None:
        assert not is_material_change("We use the framework.", "we use the framework")
        assert is_material_change(SUGGESTED, USER_VERSION)

    def test_compute_word_diff(self) -> None:
        diff = compute_word_diff(SUGGESTED, USER_VERSION)
        assert diff.removals == ["utilize"]
        assert diff.additions == ["use"]
        assert diff.substitutions == [("utilize", "use")]

    def test_accepted_decisions_never_create_patterns(self) -> None:
        adjustments, insights = learn_from_diff(
            DocumentAdjustments(), _decision(DecisionKind.ACCEPTED)
        )
        assert adjustments.diff_patterns == []
        assert insights == []

    def test_partial_decisions_never_create_patterns(self) -> None:
        adjustments, _ = learn_from_diff(DocumentAdjustments(), _decision(DecisionKind.PARTIAL))
        assert adjustments.diff_patterns == []

    def test_activation_boundary(self) -> None:
        adjustments = DocumentAdjustments()
        for _ in range(ACTIVATION_SUPPORT - 1):
            adjustments, _ = learn_from_diff(adjustments, _decision())

        removal = next(p for p in adjustments.diff_patterns if p.kind is PatternKind.REMOVAL)
        assert removal.count == 4
        assert removal.confidence == pytest.approx(0.8)
        assert adjustments.additional_avoid_words == []
        assert adjustments.additional_prefer_words == {}

        adjustments, insights = learn_from_diff(adjustments, _decision())

        assert "utilize" in adjustments.additional_avoid_words
        assert adjustments.additional_prefer_words == {"utilize": "use"}
        diff_rules = [r for r in adjustments.learned_rules if r.source is RuleSource.DIFF]
        assert len(diff_rules) == 1
        assert diff_rules[0].confidence == 1.0
        assert any("consistent word pattern" in i for i in insights)

    def test_support_counts_once_per_decision(self) -> None:
        decision = _decision(
            suggested="utilize utilize utilize the plan",
            final="use use use the plan",
        )
        adjustments, _ = learn_from_diff(DocumentAdjustments(), decision)
        removal = next(p for p in adjustments.diff_patterns if p.kind is PatternKind.REMOVAL)
        assert removal.count == 1

    def test_empty_final_text_creates_no_patterns(self) -> None:
        adjustments, insights = learn_from_diff(DocumentAdjustments(), _decision(final="   "))
        assert adjustments.diff_patterns == []
        assert insights == []

    def test_activated_removal_displaces_oldest_avoid_word(self) -> None:
        full = [f"word{i}" for i in range(50)]
        adjustments = DocumentAdjustments(additional_avoid_words=full)

        for _ in range(ACTIVATION_SUPPORT):
            adjustments, _ = learn_from_diff(adjustments, _decision())

        avoid = adjustments.additional_avoid_words
        assert len(avoid) == 50
        assert avoid[-1] == "utilize"
        assert "word0" not in avoid
        assert "word49" in avoid


def test_push_words_moves_repeat_to_end() -> None:
    assert push_words(["alpha", "Beta", "gamma"], ["beta", " ", "delta"]) == [
        "alpha",
        "gamma",
        "beta",
        "delta",
    ]


class TestConstraintMerge:
    def test_set_sliders_are_averaged(self) -> None:
        merged = merge_constraints(
            DocumentAdjustments(verbosity_adjust=-2, hedging_adjust=0),
            ExtractedConstraints(verbosity_adjust=1, hedging_adjust=1.5),
        )
        assert merged.verbosity_adjust == -0.5
        assert merged.hedging_adjust == 1.5

    def test_extracted_substitution_wins(self) -> None:
        merged = merge_constraints(
            DocumentAdjustments(
                additional_prefer_words={"utilize": "employ", "very": "highly"},
                additional_avoid_words=["Novel"],
            ),
            ExtractedConstraints(prefer_words={"utilize": "use"}, avoid_words=["novel", "leverage"]),
        )
        assert merged.additional_prefer_words == {"utilize": "use", "very": "highly"}
        assert merged.additional_avoid_words == ["Novel", "leverage"]

    def test_repeated_rules_are_not_duplicated(self) -> None:
        constraints = ExtractedConstraints(rules=["Use active voice"])
        once = merge_constraints(DocumentAdjustments(), constraints)
        twice = merge_constraints(once, constraints)
        assert [r.rule for r in twice.learned_rules] == ["Use active voice"]

    def test_payload_is_sanitized(self) -> None:
        constraints = ExtractedConstraints.model_validate(
            {
                "verbosityAdjust": None,
                "avoidWords": "everything",
                "preferWords": {"a": 1, "utilize": "use"},
                "rules": [f"rule {i}" for i in range(40)] + [3],
                "summary": "",
            }
        )
        assert constraints.verbosity_adjust == 0.0
        assert constraints.avoid_words == []
        assert constraints.prefer_words == {"utilize": "use"}
        assert len(constraints.rules) == 30
        assert constraints.summary == "Constraints extracted from provided text"


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class TestLearningEngine:
    def test_untouched_accept_skips_provider(self, mock_claude_client: ClaudeClient) -> None:
        engine = LearningEngine(mock_claude_client)
        prefs = DocumentPreferences(document_id="doc-1")
        decision = _decision(DecisionKind.ACCEPTED, final=SUGGESTED)

        outcome = _record(engine, prefs, decision)

        mock_claude_client._client.messages.create.assert_not_called()
        assert outcome.preferences.edit_history == [decision]
        assert outcome.adjustments.diff_patterns == []
        # the input record is not modified
        assert prefs.edit_history == []

    def test_inferred_sliders_are_not_applied(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.return_value = make_mock_response(
            json.dumps(
                {
                    "verbosityAdjust": -1.5,
                    "formalityAdjust": 0,
                    "hedgingAdjust": 0,
                    "learnedRule": "Prefer plain verbs",
                    "avoidWords": ["leverage"],
                    "preferWords": {"commence": "start"},
                    "framingGuidance": ["Lead with the method"],
                }
            )
        )
        engine = LearningEngine(mock_claude_client)

        outcome = _record(engine, DocumentPreferences(document_id="doc-1"), _decision())

        adjustments = outcome.adjustments
        assert adjustments.verbosity_adjust == 0.0
        assert adjustments.additional_avoid_words == ["leverage"]
        assert adjustments.additional_prefer_words == {"commence": "start"}
        assert adjustments.additional_framing_guidance == ["Lead with the method"]
        rule = adjustments.learned_rules[0]
        assert (rule.rule, rule.confidence, rule.source) == ("Prefer plain verbs", 0.8, RuleSource.INFERRED)
        assert any("not applied" in insight for insight in outcome.insights)

    def test_partial_rule_confidence(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.return_value = make_mock_response(
            '{"learnedRule": "Keep the first sentence"}'
        )
        engine = LearningEngine(mock_claude_client)

        outcome = _record(
            engine, DocumentPreferences(document_id="doc-1"), _decision(DecisionKind.PARTIAL)
        )
        assert outcome.adjustments.learned_rules[0].confidence == 0.6

    def test_provider_failure_still_records_decision(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.side_effect = make_auth_error()
        engine = LearningEngine(mock_claude_client)
        prefs = DocumentPreferences(
            document_id="doc-1",
            adjustments=DocumentAdjustments(additional_avoid_words=["very"]),
        )
        decision = _decision(DecisionKind.PARTIAL)

        outcome = _record(engine, prefs, decision, ["too_verbose"])

        assert outcome.preferences.edit_history == [decision]
        assert outcome.adjustments.verbosity_adjust == -0.5
        assert outcome.adjustments.additional_avoid_words == ["very"]
        assert outcome.errors and outcome.errors[0].startswith("inference:")

    def test_unparseable_inference_leaves_layer(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.return_value = make_mock_response("no idea")
        engine = LearningEngine(mock_claude_client)
        prefs = DocumentPreferences(document_id="doc-1")

        outcome = _record(engine, prefs, _decision(DecisionKind.PARTIAL))

        assert outcome.adjustments == prefs.adjustments
        assert len(outcome.preferences.edit_history) == 1

    def test_unknown_tag_fails_before_provider(self, mock_claude_client: ClaudeClient) -> None:
        engine = LearningEngine(mock_claude_client)
        with pytest.raises(ValidationError):
            _record(engine, DocumentPreferences(document_id="doc-1"), _decision(), ["nope"])
        mock_claude_client._client.messages.create.assert_not_called()

    def test_decision_for_other_document(self, mock_claude_client: ClaudeClient) -> None:
        engine = LearningEngine(mock_claude_client)
        with pytest.raises(ValidationError):
            _record(engine, DocumentPreferences(document_id="doc-1"), _decision(document_id="doc-2"))

    def test_fifth_decision_triggers_consolidation(self, mock_claude_client: ClaudeClient) -> None:
        engine = LearningEngine(mock_claude_client)
        prefs = DocumentPreferences(document_id="doc-1")
        untouched = _decision(DecisionKind.ACCEPTED, final=SUGGESTED)
        for _ in range(4):
            prefs = _record(engine, prefs, untouched).preferences
        mock_claude_client._client.messages.create.assert_not_called()

        mock_claude_client._client.messages.create.return_value = make_mock_response(
            json.dumps(
                {
                    "patterns": ["User accepts short edits"],
                    "suggestedAdjustments": {"verbosityAdjust": 1.2},
                }
            )
        )
        outcome = _record(engine, prefs, untouched)

        assert mock_claude_client._client.messages.create.call_count == 1
        assert outcome.adjustments.verbosity_adjust == pytest.approx(0.6)
        assert "Patterns detected: User accepts short edits" in outcome.insights

    def test_consolidation_follows_decision_count_after_eviction(
        self, mock_claude_client: ClaudeClient
    ) -> None:
        engine = LearningEngine(mock_claude_client)
        untouched = _decision(DecisionKind.ACCEPTED, final=SUGGESTED)
        prefs = DocumentPreferences(
            document_id="doc-1", edit_history=[untouched] * 100, decision_count=101
        )

        prefs = _record(engine, prefs, untouched).preferences

        assert len(prefs.edit_history) == 100
        assert prefs.decision_count == 102
        mock_claude_client._client.messages.create.assert_not_called()

        mock_claude_client._client.messages.create.return_value = make_mock_response(
            json.dumps({"patterns": [], "suggestedAdjustments": {}})
        )
        for _ in range(3):
            prefs = _record(engine, prefs, untouched).preferences

        assert prefs.decision_count == 105
        assert mock_claude_client._client.messages.create.call_count == 1

    def test_diff_learning_through_engine(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.return_value = make_mock_response("{}")
        engine = LearningEngine(mock_claude_client)
        prefs = DocumentPreferences(document_id="doc-1")

        for _ in range(4):
            prefs = _record(engine, prefs, _decision()).preferences
        assert "utilize" not in prefs.adjustments.additional_avoid_words

        prefs = _record(engine, prefs, _decision()).preferences
        assert "utilize" in prefs.adjustments.additional_avoid_words
        assert len(prefs.edit_history) == 5


# ---------------------------------------------------------------------------
# Consolidation
# ---------------------------------------------------------------------------


class TestConsolidator:
    @pytest.mark.parametrize(
        ("length", "due"), [(0, False), (4, False), (5, True), (6, False), (10, True)]
    )
    def test_is_due(self, length: int, due: bool) -> None:
        assert is_due(length) is due

    @pytest.mark.parametrize(("count", "target"), [(6, 3), (7, 4), (9, 4), (20, 4)])
    def test_compress_target(self, count: int, target: int) -> None:
        assert compress_target(count) == target

    def test_damping(self) -> None:
        updated = apply_damped(DocumentAdjustments(), SuggestedAdjustments(verbosity_adjust=1.2))
        assert updated.verbosity_adjust == pytest.approx(0.6)

    def test_damped_result_is_clamped(self) -> None:
        updated = apply_damped(
            DocumentAdjustments(hedging_adjust=-1.5),
            SuggestedAdjustments(hedging_adjust=-3.0, additional_avoid_words=["very"]),
        )
        assert updated.hedging_adjust == -2.0
        assert updated.additional_avoid_words == ["very"]

    def test_periodic_failure_is_noop(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.side_effect = make_auth_error()
        adjustments = DocumentAdjustments(verbosity_adjust=0.5)

        report = PatternConsolidator(mock_claude_client).consolidate(
            adjustments, [_decision()], BaseStyle()
        )
        assert report.adjustments == adjustments
        assert report.error

    def test_compression_provider_failure_keeps_six_items(
        self, mock_claude_client: ClaudeClient
    ) -> None:
        mock_claude_client._client.messages.create.side_effect = make_auth_error()
        guidance = [f"Guidance item {i}" for i in range(6)]
        adjustments = DocumentAdjustments(additional_framing_guidance=guidance)

        report = PatternConsolidator(mock_claude_client).compress_if_needed(adjustments)

        assert report.adjustments.additional_framing_guidance == guidance
        assert report.error == "guidance compression failed"

    def test_compression_parse_failure_keeps_items(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.return_value = make_mock_response(
            "I merged them for you."
        )
        guidance = [f"Guidance item {i}" for i in range(6)]
        report = PatternConsolidator(mock_claude_client).compress_if_needed(
            DocumentAdjustments(additional_framing_guidance=guidance)
        )
        assert report.adjustments.additional_framing_guidance == guidance

    def test_compression_over_target_is_rejected(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.return_value = make_mock_response(
            json.dumps(["a", "b", "c", "d"])
        )
        items = [f"g{i}" for i in range(6)]
        assert PatternConsolidator(mock_claude_client).compress(items) is None

    def test_compresses_guidance_and_rules(self, mock_claude_client: ClaudeClient) -> None:
        script(
            mock_claude_client,
            '```json\n["Lead with results", "Keep it short"]\n```',
            json.dumps(["Be concise", "Avoid jargon", "Use active voice"]),
        )
        adjustments = DocumentAdjustments(
            additional_framing_guidance=[f"g{i}" for i in range(6)],
            learned_rules=[LearnedRule(rule=f"r{i}", confidence=0.5 + i / 20) for i in range(7)],
        )

        report = PatternConsolidator(mock_claude_client).compress_if_needed(adjustments)

        assert report.adjustments.additional_framing_guidance == ["Lead with results", "Keep it short"]
        assert [r.rule for r in report.adjustments.learned_rules] == [
            "Be concise",
            "Avoid jargon",
            "Use active voice",
        ]
        assert report.adjustments.learned_rules[0].confidence == pytest.approx(0.8)
        assert report.error is None

    def test_diff_rules_survive_rule_compression(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.return_value = make_mock_response(
            json.dumps(["Be concise", "Avoid jargon"])
        )
        diff_rule = LearnedRule(
            rule='Use "use" where it fits; the user keeps adding it',
            confidence=1.0,
            source=RuleSource.DIFF,
        )
        adjustments = DocumentAdjustments(
            learned_rules=[LearnedRule(rule=f"r{i}", confidence=0.6) for i in range(6)] + [diff_rule]
        )

        report = PatternConsolidator(mock_claude_client).compress_if_needed(adjustments)

        rules = report.adjustments.learned_rules
        assert [r.rule for r in rules] == ["Be concise", "Avoid jargon", diff_rule.rule]
        assert rules[-1] == diff_rule
        assert rules[0].confidence == pytest.approx(0.6)
        sent = mock_claude_client._client.messages.create.call_args.kwargs["messages"][0]["content"]
        assert diff_rule.rule not in sent

    def test_diff_rules_do_not_count_toward_threshold(
        self, mock_claude_client: ClaudeClient
    ) -> None:
        adjustments = DocumentAdjustments(
            learned_rules=[LearnedRule(rule=f"r{i}", confidence=0.6) for i in range(5)]
            + [LearnedRule(rule=f"d{i}", confidence=1.0, source=RuleSource.DIFF) for i in range(3)]
        )

        report = PatternConsolidator(mock_claude_client).compress_if_needed(adjustments)

        assert report.adjustments == adjustments
        mock_claude_client._client.messages.create.assert_not_called()

    def test_small_lists_make_no_call(self, mock_claude_client: ClaudeClient) -> None:
        adjustments = DocumentAdjustments(additional_framing_guidance=["a", "b", "c", "d", "e"])
        report = PatternConsolidator(mock_claude_client).compress_if_needed(adjustments)

        assert report.adjustments == adjustments
        mock_claude_client._client.messages.create.assert_not_called()
