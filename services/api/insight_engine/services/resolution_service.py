from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from ..advisor import AdvisorAnswer, LocalAdvisor
from ..config import (
    get_external_timeout,
    get_generic_phrases,
    get_relevance_lengths,
    get_retry_delays,
    get_stop_words,
)
from ..errors import LocalEngineError, ResolutionSuperseded

logger = logging.getLogger(__name__)


AskExternal = Callable[[str, Optional[Dict]], Awaitable[Dict]]


@dataclass
class Resolution:
    text: str
    source: str  # external|local
    confidence: str  # high|medium|low
    analysis: Optional[str] = None
    recommendations: List[str] = field(default_factory=list)
    actionable: bool = True
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["timestamp"] = self.timestamp.isoformat()
        return d


def _base_form(word: str) -> str:
    if word.endswith("ies"):
        return word[:-3] + "y"
    if word.endswith("ing"):
        return word[:-3]
    return word


def is_relevant(
    response: Optional[str],
    question: str,
    generic_phrases: Optional[Iterable[str]] = None,
    stop_words: Optional[Iterable[str]] = None,
    min_length: Optional[int] = None,
    min_relevant_length: Optional[int] = None,
) -> bool:
    """Keyword-overlap check deciding whether a remote answer can be shown.

    Short answers and canned replies are rejected outright. Otherwise the
    answer has to mention at least one content word of the question (or its
    base form) and be long enough to carry some substance.
    """
    if not response:
        return False
    if min_length is None or min_relevant_length is None:
        lengths = get_relevance_lengths()
        min_length = lengths["min_length"] if min_length is None else min_length
        if min_relevant_length is None:
            min_relevant_length = lengths["min_relevant_length"]
    phrases = get_generic_phrases() if generic_phrases is None else generic_phrases
    stops = set(get_stop_words() if stop_words is None else stop_words)

    if len(response) < min_length:
        return False
    lowered = response.lower()
    if any(p.lower() in lowered for p in phrases):
        return False

    keywords = [w for w in question.lower().split() if len(w) > 3 and w not in stops]
    if not keywords:
        return True
    mentions = any(w in lowered or _base_form(w) in lowered for w in keywords)
    return mentions and len(response) >= min_relevant_length


def _normalize(question: str) -> str:
    return " ".join((question or "").lower().split())


class ResolutionOrchestrator:
    """Answers a question from the remote source when it is usable, locally otherwise.

    One orchestrator serves one conversation. A repeated question joins the
    pending resolution; a different question cancels it.
    """

    def __init__(
        self,
        ask_external: AskExternal,
        local_engine_factory: Callable[[], LocalAdvisor],
        timeout: Optional[float] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ):
        delays = get_retry_delays()
        self.ask_external = ask_external
        self.local_engine_factory = local_engine_factory
        self.timeout = get_external_timeout() if timeout is None else timeout
        self.base_delay = delays["base_delay"] if base_delay is None else base_delay
        self.max_delay = delays["max_delay"] if max_delay is None else max_delay
        self.retry_count = 0
        self.last_question: Optional[str] = None
        self._sleep = sleep
        self._clock = clock
        self._pending: Dict[str, asyncio.Task] = {}

    @property
    def is_resolving(self) -> bool:
        return bool(self._pending)

    def backoff_delay(self) -> float:
        if self.retry_count <= 0:
            return 0.0
        return min(self.base_delay * 2 ** (self.retry_count - 1), self.max_delay)

    async def resolve(self, question: str, context: Optional[Dict] = None) -> Resolution:
        key = _normalize(question)
        task = self._pending.get(key)
        if task is None:
            for other in list(self._pending.values()):
                other.cancel()
            self.last_question = question
            task = asyncio.ensure_future(self._resolve(question, context))
            self._pending[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise ResolutionSuperseded(question) from None
            raise

    async def manual_retry(self, context: Optional[Dict] = None) -> Resolution:
        if self.last_question is None:
            raise KeyError("no_previous_question")
        self.retry_count = 0
        return await self.resolve(self.last_question, context)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]

    async def _resolve(self, question: str, context: Optional[Dict]) -> Resolution:
        delay = self.backoff_delay()
        if delay:
            logger.info("Waiting %.1fs before attempt %d", delay, self.retry_count + 1)
            await self._sleep(delay)

        text = await self._ask(question, context)
        if text is not None and is_relevant(text, question):
            self.retry_count = 0
            return Resolution(text=text, source="external", confidence="high", timestamp=self._clock())
        if text is not None:
            logger.info("External answer rejected as off-topic or generic")

        try:
            reply = await asyncio.to_thread(self._answer_locally, question)
        except Exception as e:
            self.retry_count += 1
            retry_after = self.backoff_delay()
            logger.error("Local engine failed (attempt %d): %s", self.retry_count, e)
            raise LocalEngineError(str(e), retry_count=self.retry_count, retry_after=retry_after) from e
        self.retry_count = 0
        return Resolution(
            text=reply.format(),
            source="local",
            confidence=reply.confidence,
            analysis=reply.analysis or None,
            recommendations=list(reply.recommendations),
            actionable=reply.actionable,
            timestamp=self._clock(),
        )

    def _answer_locally(self, question: str) -> AdvisorAnswer:
        # runs in a worker thread; factories may read from the database
        return self.local_engine_factory().answer(question)

    async def _ask(self, question: str, context: Optional[Dict]) -> Optional[str]:
        try:
            resp = await asyncio.wait_for(self.ask_external(question, context), self.timeout)
        except asyncio.TimeoutError:
            logger.warning("External answer timed out after %.1fs", self.timeout)
            return None
        except Exception as e:
            logger.warning("External answer unavailable: %s", e)
            return None
        text = resp.get("text") if isinstance(resp, dict) else None
        return text if isinstance(text, str) else None
