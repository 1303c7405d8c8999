"""Typed models for policy summaries and cache entries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class SummaryRecord:
    privacy_score: int
    score_explanation: str
    summary: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "privacy_score": self.privacy_score,
            "score_explanation": self.score_explanation,
            "summary": self.summary,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SummaryRecord":
        """Load a record stored verbatim by the cache."""
        score = data["privacy_score"]
        explanation = data["score_explanation"]
        summary = data["summary"]
        if isinstance(score, bool) or not isinstance(score, int):
            raise ValueError(f"privacy_score must be an integer, got {score!r}")
        if not 0 <= score <= 10:
            raise ValueError(f"privacy_score out of range: {score}")
        if not isinstance(explanation, str) or not isinstance(summary, str):
            raise ValueError("score_explanation and summary must be strings")
        return cls(privacy_score=score, score_explanation=explanation, summary=summary)


@dataclass(frozen=True)
class CacheEntry:
    document_key: str
    result: SummaryRecord
    fingerprint: str
    created_at: int

    def to_stored(self) -> Dict[str, Any]:
        """Return the on-disk value shape: summary, hash and date (epoch ms)."""
        return {"summary": self.result.to_dict(), "hash": self.fingerprint, "date": self.created_at}

    @classmethod
    def from_stored(cls, document_key: str, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            document_key=document_key,
            result=SummaryRecord.from_dict(data["summary"]),
            fingerprint=str(data["hash"]),
            created_at=int(data["date"]),
        )
