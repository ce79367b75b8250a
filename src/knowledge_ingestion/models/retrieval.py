"""Retrieval request and payload models."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class SearchOutcome(str, Enum):
    """How the gateway shaped a result set."""

    NO_RESULTS = "no_results"
    SINGLE = "single"
    FEW = "few"
    DISAMBIGUATION = "disambiguation"


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, description="Natural-language question")
    knowledge_base_id: Optional[str] = None


class AnswerRequest(SearchRequest):
    timeout: Optional[float] = Field(None, gt=0, description="Seconds allowed for synthesis")


class MatchedDocument(BaseModel):
    """All matched chunks of one document, in rank order."""

    display_name: str
    category: Optional[str] = None
    best_score: Optional[float] = None
    chunks: List[str] = Field(default_factory=list)


class SearchPayload(BaseModel):
    """Classified, bounded context handed to the conversational agent."""

    outcome: SearchOutcome
    query: str
    namespace: Optional[str] = None
    documents: List[MatchedDocument] = Field(default_factory=list)
    document_names: List[str] = Field(
        default_factory=list, description="Distinct matched names (capped for disambiguation)"
    )
    context: str = Field(default="", description="Matched text grouped by source; empty for disambiguation")
    instruction: str = Field(..., description="How the downstream summarizer must treat the context")

    @property
    def is_answerable(self) -> bool:
        return self.outcome in (SearchOutcome.SINGLE, SearchOutcome.FEW)


class AgentAnswer(BaseModel):
    """Search payload plus the synthesized answer, when one was produced in time."""

    payload: SearchPayload
    answer: Optional[str] = Field(None, description="None means no answer is available")
