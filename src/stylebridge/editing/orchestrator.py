"""Generate, critique and refine a paragraph until it is good enough.

Each iteration asks the editor for a candidate and the critic for a score.
The loop stops when a score reaches the alignment threshold or when the
iteration ceiling is hit, and returns the best candidate seen so far.
"""

from __future__ import annotations

import logging

from stylebridge.editing.base import (
    ConvergenceStep,
    EditRequest,
    EditResult,
    EditState,
)
from stylebridge.editing.critic import CritiqueScorer
from stylebridge.editing.generator import ParagraphEditor
from stylebridge.errors import ValidationError
from stylebridge.style.models import (
    AudienceProfile,
    BaseStyle,
    CritiqueAnalysis,
    DocumentAdjustments,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 3
DEFAULT_ALIGNMENT_THRESHOLD = 0.8


def validate_request(request: EditRequest) -> None:
    """Reject malformed requests before anything is sent to the provider."""
    if not request.document_id or not request.document_id.strip():
        raise ValidationError("document_id is required")
    if not request.paragraphs:
        raise ValidationError("At least one paragraph is required")
    if not 0 <= request.paragraph_index < len(request.paragraphs):
        raise ValidationError(
            f"paragraph_index {request.paragraph_index} is out of range "
            f"for {len(request.paragraphs)} paragraphs"
        )
    if not request.paragraph.strip():
        raise ValidationError(f"Paragraph {request.paragraph_index} is empty")


class EditOrchestrator:
    def __init__(
        self,
        editor: ParagraphEditor,
        critic: CritiqueScorer,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        alignment_threshold: float = DEFAULT_ALIGNMENT_THRESHOLD,
    ) -> None:
        if max_iterations < 1:
            raise ValidationError("max_iterations must be at least 1")
        self._editor = editor
        self._critic = critic
        self.max_iterations = max_iterations
        self.alignment_threshold = alignment_threshold

    def run(
        self,
        request: EditRequest,
        style: BaseStyle,
        *,
        audience: AudienceProfile | None = None,
        adjustments: DocumentAdjustments | None = None,
    ) -> EditResult:
        """Run the loop for ``request``.

        ``style`` is the already merged effective style. A ProviderError from
        generation ends the run with no result; critique failures are scored
        with the critic's fallback.
        """
        validate_request(request)
        adjustments = adjustments or DocumentAdjustments()
        section = request.structure.section_for(request.paragraph_index) if request.structure else None

        transitions = [EditState.PENDING]
        history: list[ConvergenceStep] = []
        best: tuple[str, CritiqueAnalysis] | None = None
        previous: tuple[str, CritiqueAnalysis] | None = None
        converged = False

        for iteration in range(1, self.max_iterations + 1):
            transitions.append(EditState.GENERATING)
            candidate = self._editor.generate(
                request,
                style,
                audience=audience,
                adjustments=adjustments,
                previous=previous,
            )

            transitions.append(EditState.SCORING)
            critique = self._critic.score(
                request.paragraph,
                candidate,
                style,
                audience=audience,
                adjustments=adjustments,
                section_type=section.type if section else None,
            )
            history.append(
                ConvergenceStep(
                    iteration=iteration,
                    alignment_score=critique.alignment_score,
                    issue_count=len(critique.issues),
                    fallback=critique.fallback,
                    note="fallback critique" if critique.fallback else "",
                )
            )
            logger.info(
                "Paragraph %d iteration %d: alignment %.2f",
                request.paragraph_index,
                iteration,
                critique.alignment_score,
            )

            if best is None or critique.alignment_score > best[1].alignment_score:
                best = (candidate, critique)

            if critique.alignment_score >= self.alignment_threshold:
                transitions.append(EditState.CONVERGED)
                converged = True
                break
            if iteration == self.max_iterations:
                break

            transitions.append(EditState.REFINING)
            previous = (candidate, critique)

        transitions.append(EditState.DONE)
        edited_text, critique = best
        return EditResult(
            edited_text=edited_text,
            original_text=request.paragraph,
            paragraph_index=request.paragraph_index,
            critique=critique,
            iterations=len(history),
            convergence_history=history,
            adjustments=adjustments.model_copy(deep=True),
            converged=converged,
            transitions=transitions,
        )
