from __future__ import annotations
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

from app.core.errors import ValidationError


class RubricCriterion(BaseModel):
    criterionId: str
    name: str
    description: str = ""
    maxPoints: int = Field(..., gt=0)


class CriterionScore(BaseModel):
    criterionId: str
    points: int
    comment: Optional[str] = None


class Rubric(BaseModel):
    """
    Rubrica versionata: insieme ordinato di criteri con punteggio massimo.
    Viene salvata sull'assignment, quindi ogni assignment puo' averne una diversa.
    """
    rubricId: str = "default"
    version: int = Field(1, ge=1)
    criteria: List[RubricCriterion] = Field(..., min_length=1)

    @field_validator("criteria")
    @classmethod
    def _unique_ids(cls, v: List[RubricCriterion]) -> List[RubricCriterion]:
        ids = [c.criterionId for c in v]
        if len(set(ids)) != len(ids):
            raise ValueError("criterionId duplicati nella rubrica")
        return v

    @property
    def max_total(self) -> int:
        return sum(c.maxPoints for c in self.criteria)

    def by_id(self) -> Dict[str, RubricCriterion]:
        return {c.criterionId: c for c in self.criteria}

    def validate_scores(self, scores: Sequence[CriterionScore]) -> List[CriterionScore]:
        """
        Verifica che i punteggi coprano esattamente i criteri della rubrica
        (nessun mancante, nessuno estraneo, nessun doppione) e che ogni
        punteggio stia in [0, maxPoints]. Ritorna i punteggi nell'ordine
        della rubrica.
        """
        criteria = self.by_id()
        seen: Dict[str, CriterionScore] = {}
        errors = []
        for s in scores:
            if s.criterionId in seen:
                errors.append(f"criterio {s.criterionId} valutato piu' volte")
                continue
            seen[s.criterionId] = s
            crit = criteria.get(s.criterionId)
            if crit is None:
                errors.append(f"criterio sconosciuto: {s.criterionId}")
            elif not 0 <= s.points <= crit.maxPoints:
                errors.append(
                    f"punteggio {s.points} fuori range per {s.criterionId} (0-{crit.maxPoints})"
                )
        missing = [cid for cid in criteria if cid not in seen]
        if missing:
            errors.append(f"criteri mancanti: {missing}")
        if errors:
            raise ValidationError("; ".join(errors))
        return [seen[c.criterionId] for c in self.criteria]


def default_rubric() -> Rubric:
    return Rubric(
        rubricId="default",
        version=1,
        criteria=[
            RubricCriterion(criterionId="content", name="Content Quality",
                            description="Accuracy, completeness, and depth of the content", maxPoints=25),
            RubricCriterion(criterionId="understanding", name="Understanding",
                            description="Demonstrates clear understanding of the concepts", maxPoints=25),
            RubricCriterion(criterionId="organization", name="Organization",
                            description="Clear structure and logical flow", maxPoints=25),
            RubricCriterion(criterionId="presentation", name="Presentation",
                            description="Clarity, formatting, and overall presentation", maxPoints=25),
        ],
    )
