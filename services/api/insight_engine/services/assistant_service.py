from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Dict, Optional

from .. import db as db_mod
from ..advisor import LocalAdvisor
from ..llm import ask_external
from .insights_service import advisor_for
from .resolution_service import ResolutionOrchestrator

logger = logging.getLogger(__name__)


MAX_ORCHESTRATORS = 256

# One orchestrator per user so retry state and in-flight questions are per conversation.
# Least recently used conversations are dropped past MAX_ORCHESTRATORS.
_ORCHESTRATORS: "OrderedDict[str, ResolutionOrchestrator]" = OrderedDict()


def _local_advisor(user_id: str) -> LocalAdvisor:
    with db_mod.get_connection() as conn:
        return advisor_for(conn, user_id)


def orchestrator_for(user_id: str) -> ResolutionOrchestrator:
    orch = _ORCHESTRATORS.get(user_id)
    if orch is None:
        orch = ResolutionOrchestrator(ask_external, lambda: _local_advisor(user_id))
        _ORCHESTRATORS[user_id] = orch
        while len(_ORCHESTRATORS) > MAX_ORCHESTRATORS:
            evicted, _ = _ORCHESTRATORS.popitem(last=False)
            logger.debug("Dropped assistant state for %s", evicted)
    else:
        _ORCHESTRATORS.move_to_end(user_id)
    return orch


def reset() -> None:
    _ORCHESTRATORS.clear()


def _context(user_id: str) -> Optional[Dict]:
    try:
        return _local_advisor(user_id).context()
    except Exception as e:
        logger.warning("No financial context for %s: %s", user_id, e)
        return None


async def ask(user_id: str, question: str) -> Dict:
    orch = orchestrator_for(user_id)
    context = await asyncio.to_thread(_context, user_id)
    resolution = await orch.resolve(question, context)
    return dict(resolution.to_dict(), user_id=user_id)


async def retry(user_id: str) -> Dict:
    orch = orchestrator_for(user_id)
    if orch.last_question is None:
        raise KeyError("no_previous_question")
    context = await asyncio.to_thread(_context, user_id)
    resolution = await orch.manual_retry(context)
    return dict(resolution.to_dict(), user_id=user_id)
