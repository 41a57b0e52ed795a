"""Request, result and context types for the edit loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from stylebridge.style.models import CritiqueAnalysis, DocumentAdjustments, DocumentGoals

# Paragraphs of surrounding context shown on each side of the edited one.
CONTEXT_WINDOW = 2


class EditState(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    SCORING = "scoring"
    REFINING = "refining"
    CONVERGED = "converged"
    DONE = "done"


@dataclass
class Section:
    name: str
    type: str
    start_paragraph: int
    end_paragraph: int
    purpose: str = ""
    id: str = ""

    def contains(self, index: int) -> bool:
        return self.start_paragraph <= index <= self.end_paragraph


@dataclass
class DocumentStructure:
    """Summary of a document's layout, produced by an upstream analysis step."""

    title: str = ""
    document_type: str = ""
    main_argument: str = ""
    sections: list[Section] = field(default_factory=list)
    key_terms: list[str] = field(default_factory=list)

    def section_for(self, index: int) -> Section | None:
        for section in self.sections:
            if section.contains(index):
                return section
        return None


@dataclass
class DocumentContext:
    """Document-level context rendered into edit instructions."""

    structure: DocumentStructure | None = None
    paragraph_index: int | None = None
    goals: DocumentGoals | None = None

    @property
    def section(self) -> Section | None:
        if self.structure is None or self.paragraph_index is None:
            return None
        return self.structure.section_for(self.paragraph_index)


@dataclass
class EditRequest:
    """Input parameters for revising one paragraph."""

    document_id: str
    paragraph_index: int
    paragraphs: list[str]
    instruction: str | None = None
    structure: DocumentStructure | None = None
    profile_id: str | None = None

    @property
    def paragraph(self) -> str:
        return self.paragraphs[self.paragraph_index]

    def surrounding(self) -> tuple[list[tuple[int, str]], list[tuple[int, str]]]:
        """Numbered paragraphs before and after the edited one."""
        start = max(0, self.paragraph_index - CONTEXT_WINDOW)
        end = min(len(self.paragraphs), self.paragraph_index + CONTEXT_WINDOW + 1)
        before = [(i, self.paragraphs[i]) for i in range(start, self.paragraph_index)]
        after = [(i, self.paragraphs[i]) for i in range(self.paragraph_index + 1, end)]
        return before, after


@dataclass
class ConvergenceStep:
    iteration: int
    alignment_score: float
    issue_count: int = 0
    fallback: bool = False
    note: str = ""


@dataclass
class EditResult:
    """Output of the edit loop: the best candidate and how it was reached."""

    edited_text: str
    original_text: str
    paragraph_index: int
    critique: CritiqueAnalysis
    iterations: int
    convergence_history: list[ConvergenceStep]
    adjustments: DocumentAdjustments
    converged: bool = False
    transitions: list[EditState] = field(default_factory=list)
