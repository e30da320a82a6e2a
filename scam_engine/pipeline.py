"""
PIPELINE - One inbound message, end to end

PIPELINE ORDER:
1. Load session record (ledger, state, history)
2. Multi-layer score
3. Analysis (legitimacy-adjusted confidence feeds back into risk) and
   intelligence extraction, merged into the session record
4. State machine transition
5. Ledger accumulation
6. Proposed reply (LLM or fallback)
7. Response Governor
8. Compare-and-swap commit

FAULT HANDLING:
- LedgerWriteConflict: the whole turn is re-run on fresh values, up to
  LEDGER_MAX_RETRIES, then re-raised
- anything else: fixed question-free reply at DEFENSIVE or above,
  nothing committed
"""

import logging
from typing import List, Optional, Sequence

from .agent_controller import AgentController
from .analysis_engine import ScamAnalysisEngine
from .config import DEFAULT_SCORING, ScoringConfig, Settings, load_settings
from .errors import LedgerWriteConflict
from .intelligence_extractor import extract_intelligence, merge_intelligence
from .models import (
    ConversationTurn, DetectionResult, GovernorDecision, ResponseMode,
    SessionRecord, TurnOutcome, highest, user_texts,
)
from .patterns import DEFAULT_CATALOGUE, PatternCatalogue
from .response_governor import ResponseGovernor
from .risk_engine import accumulate, with_mode
from .scam_detector import MultiLayerScorer, jaccard_similarity
from .session_store import InMemorySessionStore
from .state_machine import ConversationStateMachine, conversation_phase

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

INTERNAL_FAULT_REPLY = "I need to stop here and check this with my bank myself."


def count_repetitions(
    message: str,
    history: Optional[Sequence],
    threshold: float = DEFAULT_SCORING.similarity_threshold,
) -> int:
    """
    1 + number of immediately preceding user turns that are near-duplicates
    of this message. Agent turns in between are ignored.
    """
    count = 1
    for earlier in reversed(user_texts(history)):
        if jaccard_similarity(message, earlier) <= threshold:
            break
        count += 1
    return count


class ScamEnginePipeline:
    """
    Orchestrates the detection & governance chain for every inbound message.

    Every collaborator can be injected; defaults are built from Settings.
    """

    def __init__(
        self,
        store: Optional[InMemorySessionStore] = None,
        reply_generator: Optional[AgentController] = None,
        settings: Optional[Settings] = None,
        scoring_config: Optional[ScoringConfig] = None,
        catalogue: Optional[PatternCatalogue] = None,
        governor: Optional[ResponseGovernor] = None,
    ):
        self.settings = settings or load_settings()
        logging.getLogger("scam_engine").setLevel(self.settings.log_level)

        self.scoring_config = scoring_config or DEFAULT_SCORING
        self.catalogue = catalogue or DEFAULT_CATALOGUE
        self.store = store or InMemorySessionStore()
        self.scorer = MultiLayerScorer(self.catalogue, self.scoring_config)
        self.analysis_engine = ScamAnalysisEngine(self.scoring_config)
        self.state_machine = ConversationStateMachine(self.catalogue)
        self.governor = governor or ResponseGovernor(catalogue=self.catalogue)
        self.reply_generator = reply_generator or AgentController(self.settings)

    async def process_message(
        self,
        session_id: str,
        message,
        history: Optional[Sequence] = None,
    ) -> TurnOutcome:
        retries = max(self.settings.ledger_max_retries, 0)
        for attempt in range(retries + 1):
            try:
                return await self._run_turn(session_id, message, history)
            except LedgerWriteConflict as e:
                if attempt >= retries:
                    logger.error(f"❌ Giving up after {attempt + 1} attempts: {e}")
                    raise
                logger.warning(f"Commit conflict, retrying ({attempt + 1}/{retries}): {e}")
            except Exception as e:
                logger.error(f"❌ Internal fault in session {session_id}: {e}", exc_info=True)
                return self._fault_outcome(session_id)

    def end_session(self, session_id: str) -> Optional[SessionRecord]:
        return self.store.archive(session_id)

    async def _run_turn(
        self,
        session_id: str,
        message,
        history: Optional[Sequence],
    ) -> TurnOutcome:
        record = self.store.load(session_id)
        text = message if isinstance(message, str) else ""
        if history is not None:
            turns: List[ConversationTurn] = [ConversationTurn.model_validate(turn) for turn in history]
        else:
            turns = list(record.history)

        detection = self.scorer.score(message, turns)
        analysis = self.analysis_engine.analyze(text, turns, detection)
        intelligence = extract_intelligence(text)
        effective = detection
        if analysis.legitimacyClaim:
            effective = detection.with_confidence(
                analysis.adjustedConfidence,
                self.scoring_config.scam_threshold,
                self.scoring_config.tier_bands,
            )

        state, scenario = self.state_machine.transition(text, effective, record.state)
        scenario = scenario or record.scenario

        ledger = accumulate(effective, record.ledger, state=state)
        turn_count = record.turnCount + 1
        phase = highest(conversation_phase(turn_count), ledger.highestPhase)

        repetitions = count_repetitions(text, turns, self.scoring_config.similarity_threshold)
        aggression = self.catalogue.detect_aggression(text)

        proposed = await self.reply_generator.generate_reply(
            text, turns, effective, phase=phase, turn_count=turn_count
        )

        decision = self.governor.govern(
            ledger.maxScamProbability / 100,
            proposed,
            state=state,
            scenario=scenario,
            user_message=text,
            aggression=aggression,
            repetition_count=repetitions,
            prior_mode=ledger.responseMode,
            safety_advice=analysis.safetyAdvice,
        )
        ledger = with_mode(ledger, decision.mode)

        updated = record.model_copy(update={
            "ledger": ledger,
            "state": state,
            "scenario": scenario,
            "turnCount": turn_count,
            "intelligence": merge_intelligence(record.intelligence, intelligence),
            "history": turns + [
                ConversationTurn(role="user", text=text),
                ConversationTurn(role="agent", text=decision.finalReply),
            ],
        })
        committed = self.store.commit(record, updated)

        if decision.overridden:
            logger.info(
                f"Session {session_id} turn {turn_count}: {decision.mode.value} "
                f"({decision.guardrailTriggered})"
            )

        return TurnOutcome(
            sessionId=session_id,
            reply=decision.finalReply,
            detection=effective,
            analysis=analysis,
            state=committed.state,
            scenario=committed.scenario,
            ledger=committed.ledger,
            decision=decision,
            repetitionCount=repetitions,
            intelligence=intelligence,
        )

    def _fault_outcome(self, session_id: str) -> TurnOutcome:
        try:
            record = self.store.load(session_id)
        except Exception as e:
            logger.error(f"❌ Session {session_id} unreadable: {e}")
            record = SessionRecord(sessionId=session_id)

        decision = GovernorDecision(
            finalReply=INTERNAL_FAULT_REPLY,
            mode=highest(record.ledger.responseMode, ResponseMode.DEFENSIVE),
            overridden=True,
            guardrailTriggered="INTERNAL_FAULT",
        )
        return TurnOutcome(
            sessionId=session_id,
            reply=decision.finalReply,
            detection=DetectionResult.empty(),
            analysis=None,
            state=record.state,
            scenario=record.scenario,
            ledger=record.ledger,
            decision=decision,
        )
