"""Query pipeline: decision, context assembly and answer synthesis."""

from backend.rag.graph.context_builder import BuiltContext, ContextBuilder
from backend.rag.graph.decision import DecisionEngine, parse_decision
from backend.rag.graph.runner import RagPipeline
from backend.rag.graph.state import RagState
from backend.rag.graph.synthesizer import AnswerSynthesizer

__all__ = [
    "AnswerSynthesizer",
    "BuiltContext",
    "ContextBuilder",
    "DecisionEngine",
    "RagPipeline",
    "RagState",
    "parse_decision",
]
