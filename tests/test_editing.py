"""Tests for candidate generation, critique scoring and the edit loop."""

from __future__ import annotations

import json

import pytest

from stylebridge.editing.base import EditRequest, EditState
from stylebridge.editing.critic import FALLBACK_SCORE, CritiqueScorer
from stylebridge.editing.generator import ParagraphEditor, clean_candidate
from stylebridge.editing.intent import GoalSynthesizer
from stylebridge.editing.orchestrator import EditOrchestrator
from stylebridge.errors import ProviderError, ValidationError
from stylebridge.llm.client import ClaudeClient
from stylebridge.style.models import (
    BaseStyle,
    CritiqueAnalysis,
    CritiqueIssue,
    DocumentAdjustments,
    IssueSeverity,
)
from tests.conftest import critique_json, make_auth_error, make_mock_response, script

PARAGRAPHS = [
    "First paragraph sets the scene.",
    "Second paragraph gives background.",
    "It is perhaps worth noting that the results may suggest a potential improvement.",
    "Fourth paragraph discusses limits.",
    "Fifth paragraph concludes.",
    "Sixth paragraph is far away.",
]


def _request(**overrides) -> EditRequest:
    fields = {"document_id": "doc-1", "paragraph_index": 2, "paragraphs": PARAGRAPHS}
    fields.update(overrides)
    return EditRequest(**fields)


def _orchestrator(client: ClaudeClient, **kwargs) -> EditOrchestrator:
    return EditOrchestrator(ParagraphEditor(client), CritiqueScorer(client), **kwargs)


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class TestGenerator:
    @pytest.mark.parametrize(
        "raw",
        [
            "Here's the edited paragraph: The results show an improvement.",
            "Edited version:\nThe results show an improvement.",
            '"The results show an improvement."',
        ],
    )
    def test_clean_candidate(self, raw: str) -> None:
        assert clean_candidate(raw) == "The results show an improvement."

    def test_prompt_includes_context_window(self, mock_claude_client: ClaudeClient) -> None:
        prompt = ParagraphEditor(mock_claude_client).get_system_prompt(_request(), BaseStyle())

        assert "[Paragraph 1]: First paragraph" in prompt
        assert "[Paragraph 5]: Fifth paragraph" in prompt
        assert "Sixth paragraph" not in prompt
        assert "PARAGRAPH TO EDIT:\nIt is perhaps worth noting" in prompt

    def test_terse_mode_sets_word_limit(self, mock_claude_client: ClaudeClient) -> None:
        prompt = ParagraphEditor(mock_claude_client).get_system_prompt(
            _request(), BaseStyle(), adjustments=DocumentAdjustments(verbosity_adjust=-1)
        )
        # 13 words in the paragraph, 70% ceiling
        assert "fewer than 9 words" in prompt
        assert "EXTREME COMPRESSION" in prompt

    def test_refinement_prompt_carries_feedback(self, mock_claude_client: ClaudeClient) -> None:
        critique = CritiqueAnalysis(
            alignment_score=0.4,
            issues=[CritiqueIssue(type="hedging", severity=IssueSeverity.MAJOR, description="Too many hedges")],
            suggestions=["Drop 'perhaps'"],
        )
        prompt = ParagraphEditor(mock_claude_client).get_system_prompt(
            _request(), BaseStyle(), previous=("Earlier attempt.", critique)
        )

        assert "FEEDBACK ON PREVIOUS ATTEMPT (alignment 0.40)" in prompt
        assert "Earlier attempt." in prompt
        assert "- hedging (major): Too many hedges" in prompt
        assert "- Drop 'perhaps'" in prompt

    def test_generate_uses_provider(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.return_value = make_mock_response(
            "Here's the edited paragraph: The results show an improvement."
        )
        text = ParagraphEditor(mock_claude_client).generate(_request(), BaseStyle())

        assert text == "The results show an improvement."
        kwargs = mock_claude_client._client.messages.create.call_args.kwargs
        assert kwargs["temperature"] == 0.3
        assert kwargs["messages"] == [{"role": "user", "content": "Please edit the paragraph now."}]


# ---------------------------------------------------------------------------
# Critic
# ---------------------------------------------------------------------------


class TestCritic:
    def test_parses_critique(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.return_value = make_mock_response(
            critique_json(
                0.65,
                issues=[{"type": "verbosity", "severity": "moderate", "description": "Still long"}],
                suggestions=["Cut the opening clause"],
            )
        )
        critique = CritiqueScorer(mock_claude_client).score("orig", "cand", BaseStyle())

        assert critique.alignment_score == 0.65
        assert critique.issues[0].severity is IssueSeverity.MODERATE
        assert critique.suggestions == ["Cut the opening clause"]
        assert critique.fallback is False

    def test_scores_are_clamped(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.return_value = make_mock_response(
            json.dumps({"alignmentScore": 1.7, "predictedAcceptance": -0.2})
        )
        critique = CritiqueScorer(mock_claude_client).score("orig", "cand", BaseStyle())

        assert critique.alignment_score == 1.0
        assert critique.predicted_acceptance == 0.0

    def test_unparseable_response_falls_back(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.return_value = make_mock_response(
            "Looks good to me!"
        )
        critique = CritiqueScorer(mock_claude_client).score("orig", "cand", BaseStyle())

        assert critique.fallback is True
        assert critique.alignment_score == FALLBACK_SCORE
        assert critique.predicted_acceptance == FALLBACK_SCORE
        assert critique.issues == []
        assert len(critique.suggestions) == 1

    def test_provider_failure_falls_back(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.side_effect = make_auth_error()
        critique = CritiqueScorer(mock_claude_client).score("orig", "cand", BaseStyle())

        assert critique.fallback is True
        assert critique.alignment_score == 0.7


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class TestOrchestrator:
    def test_stops_at_ceiling_and_returns_best(self, mock_claude_client: ClaudeClient) -> None:
        script(
            mock_claude_client,
            "Draft one.", critique_json(0.3),
            "Draft two.", critique_json(0.5),
            "Draft three.", critique_json(0.6),
        )
        result = _orchestrator(mock_claude_client).run(_request(), BaseStyle())

        assert result.iterations == 3
        assert result.edited_text == "Draft three."
        assert result.critique.alignment_score == 0.6
        assert result.converged is False
        assert [s.alignment_score for s in result.convergence_history] == [0.3, 0.5, 0.6]
        assert mock_claude_client._client.messages.create.call_count == 6

    def test_best_candidate_wins_over_last(self, mock_claude_client: ClaudeClient) -> None:
        script(
            mock_claude_client,
            "Draft one.", critique_json(0.7),
            "Draft two.", critique_json(0.4),
            "Draft three.", critique_json(0.7),
        )
        result = _orchestrator(mock_claude_client).run(_request(), BaseStyle())

        # Ties keep the earlier candidate
        assert result.edited_text == "Draft one."
        assert result.critique.alignment_score == 0.7

    def test_converges_early(self, mock_claude_client: ClaudeClient) -> None:
        script(
            mock_claude_client,
            "Draft one.", critique_json(0.5),
            "Draft two.", critique_json(0.85),
        )
        result = _orchestrator(mock_claude_client).run(_request(), BaseStyle())

        assert result.iterations == 2
        assert result.converged is True
        assert result.edited_text == "Draft two."
        assert mock_claude_client._client.messages.create.call_count == 4
        assert result.transitions == [
            EditState.PENDING,
            EditState.GENERATING,
            EditState.SCORING,
            EditState.REFINING,
            EditState.GENERATING,
            EditState.SCORING,
            EditState.CONVERGED,
            EditState.DONE,
        ]

    def test_refinement_sees_previous_critique(self, mock_claude_client: ClaudeClient) -> None:
        script(
            mock_claude_client,
            "Draft one.", critique_json(0.4, suggestions=["Remove the hedges"]),
            "Draft two.", critique_json(0.9),
        )
        _orchestrator(mock_claude_client).run(_request(), BaseStyle())

        calls = mock_claude_client._client.messages.create.call_args_list
        second_generation_system = calls[2].kwargs["system"]
        assert "Draft one." in second_generation_system
        assert "Remove the hedges" in second_generation_system

    def test_all_zero_scores_still_terminate(self, mock_claude_client: ClaudeClient) -> None:
        script(
            mock_claude_client,
            "A.", critique_json(0.0),
            "B.", critique_json(0.0),
        )
        result = _orchestrator(mock_claude_client, max_iterations=2).run(_request(), BaseStyle())

        assert result.iterations == 2
        assert result.edited_text == "A."
        assert result.transitions[-1] is EditState.DONE

    def test_fallback_critiques_use_full_budget(self, mock_claude_client: ClaudeClient) -> None:
        script(
            mock_claude_client,
            "A.", "not json",
            "B.", make_auth_error(),
            "C.", "still not json",
        )
        result = _orchestrator(mock_claude_client).run(_request(), BaseStyle())

        assert result.iterations == 3
        assert all(step.fallback for step in result.convergence_history)
        assert result.critique.alignment_score == 0.7
        assert result.edited_text == "A."

    def test_generation_failure_propagates(self, mock_claude_client: ClaudeClient) -> None:
        script(mock_claude_client, "Draft one.", critique_json(0.2), make_auth_error())

        with pytest.raises(ProviderError):
            _orchestrator(mock_claude_client).run(_request(), BaseStyle())

    @pytest.mark.parametrize(
        "overrides",
        [
            {"document_id": ""},
            {"paragraph_index": 6},
            {"paragraph_index": -1},
            {"paragraphs": []},
            {"paragraphs": ["   "], "paragraph_index": 0},
        ],
    )
    def test_invalid_request_makes_no_call(
        self, mock_claude_client: ClaudeClient, overrides: dict
    ) -> None:
        with pytest.raises(ValidationError):
            _orchestrator(mock_claude_client).run(_request(**overrides), BaseStyle())
        mock_claude_client._client.messages.create.assert_not_called()

    def test_result_snapshots_adjustments(self, mock_claude_client: ClaudeClient) -> None:
        script(mock_claude_client, "Draft.", critique_json(0.9))
        adjustments = DocumentAdjustments(verbosity_adjust=-1)
        result = _orchestrator(mock_claude_client).run(
            _request(), BaseStyle(), adjustments=adjustments
        )

        adjustments.verbosity_adjust = 1
        assert result.adjustments.verbosity_adjust == -1
        assert result.original_text == PARAGRAPHS[2]
        assert result.paragraph_index == 2


# ---------------------------------------------------------------------------
# Goal synthesis
# ---------------------------------------------------------------------------


class TestGoalSynthesizer:
    def test_synthesizes_goals(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.return_value = make_mock_response(
            json.dumps(
                {
                    "summary": "Argue for funding a triage pilot.",
                    "objectives": ["Show the cost case"],
                    "mainArgument": "Triage AI saves time",
                }
            )
        )
        goals = GoalSynthesizer(mock_claude_client).synthesize("Some document text.")

        assert goals.summary == "Argue for funding a triage pilot."
        assert goals.objectives == ["Show the cost case"]
        assert goals.main_argument == "Triage AI saves time"
        assert goals.user_edited is False

    def test_unusable_answer_returns_none(self, mock_claude_client: ClaudeClient) -> None:
        mock_claude_client._client.messages.create.return_value = make_mock_response(
            '{"summary": ""}'
        )
        assert GoalSynthesizer(mock_claude_client).synthesize("Text.") is None
