# bloomfeed/domain/services/scorer_svc.py

from __future__ import annotations
import asyncio
import json
import logging
import math
import re
from time import monotonic as _now
from typing import Any, Dict, List, Optional, Protocol, Tuple

from openai import AsyncOpenAI
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from bloomfeed.core.config import Settings
from bloomfeed.domain.errors import ScorerMalformedResponse, ScorerTimeout, ScorerUnavailable
from bloomfeed.domain.models.product import (
    AFFILIATE,
    MARKETPLACE,
    CandidateProduct,
    CandidateSet,
    RankedItem,
)
from bloomfeed.domain.models.viewer import ScoringContext
from bloomfeed.domain.services.constants import (
    DEFAULT_URGENCY,
    SCORE_MAX,
    SCORE_MIN,
    SELECT_MAX,
    SELECT_MIN,
)
from bloomfeed.domain.services.prompts import repair_instruction, system_prompt, user_task

logger = logging.getLogger(__name__)

MAX_COMPLETION_TOKENS = 1500
REASON_MAX_LEN = 280

# =============================================================================
#                               VALIDATION SCHEMA
# =============================================================================

class OracleItem(BaseModel):
    """
    One entry as the oracle wrote it. Lenient on purpose: out-of-range scores
    are clamped and unknown urgencies fall back to medium. Only a missing id
    or a non-numeric score makes the entry invalid.
    """
    product_id: str = Field(
        ..., min_length=1,
        validation_alias=AliasChoices("product_id", "productId", "listing_id"),
    )
    source: Optional[str] = None
    relevance_score: int = Field(
        ..., validation_alias=AliasChoices("relevance_score", "relevanceScore", "score"),
    )
    reason: str = ""
    urgency: str = DEFAULT_URGENCY

    @field_validator("product_id", mode="before")
    @classmethod
    def _id_as_str(cls, v):
        return str(v) if isinstance(v, (int, str)) else v

    @field_validator("relevance_score", mode="before")
    @classmethod
    def _clamp_score(cls, v):
        if isinstance(v, bool):
            raise ValueError("relevance_score must be numeric")
        try:
            score = float(v)
        except (TypeError, ValueError):
            raise ValueError(f"relevance_score is not numeric: {v!r}")
        if math.isnan(score):
            raise ValueError("relevance_score is NaN")
        return int(round(min(SCORE_MAX, max(SCORE_MIN, score))))

    @field_validator("urgency", mode="before")
    @classmethod
    def _default_urgency(cls, v):
        v = str(v).strip().lower() if v is not None else ""
        return v if v in ("high", "medium", "low") else DEFAULT_URGENCY

    @field_validator("reason", mode="before")
    @classmethod
    def _trim_reason(cls, v):
        return str(v or "").strip()[:REASON_MAX_LEN]


# Regex to strip code fences (``` or ```json) from LLM output
_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)
# Outermost JSON array embedded in prose
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")

def _strip_fences(s: str) -> str:
    """Remove ``` or ```json fences the LLM might add."""
    return _CODE_FENCE_RE.sub("", s).strip()

def parse_ranking_list(text: str) -> List[Any]:
    """
    Extract the list of ranking entries from raw oracle output.
    Accepts a bare array, an object wrapping the array, or an array embedded
    in prose. Raises ValueError when no list can be recovered.
    """
    raw = _strip_fences(text or "")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        match = _ARRAY_RE.search(raw)
        if not match:
            raise ValueError("No JSON array found in response")
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON array: {e}") from e

    if isinstance(parsed, dict):
        for key in ("recommendations", "results", "items"):
            if isinstance(parsed.get(key), list):
                parsed = parsed[key]
                break
    if not isinstance(parsed, list):
        raise ValueError(f"Expected a list of rankings, got {type(parsed).__name__}")
    return parsed

# =============================================================================
#                               RANKING ORACLE
# =============================================================================

class RankingOracle(Protocol):
    async def rank(self, request: Dict[str, Any], *, repair_hint: Optional[str] = None) -> str: ...


class OpenAIRankingOracle:
    """Chat-completions backed oracle. Returns the raw message content."""

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):
        self.model = settings.OPENAI_RANKING_MODEL
        self.min_items = settings.scorer_min_items
        self.max_items = settings.scorer_max_items
        self._client = client or AsyncOpenAI(api_key=settings.OPENAI_API_KEY)

    async def rank(self, request: Dict[str, Any], *, repair_hint: Optional[str] = None) -> str:
        ctx = request.get("context", {})
        task = user_task(
            min_items=self.min_items,
            max_items=self.max_items,
            preferred_source=(ctx.get("budgetSignal") or {}).get("preferred_source"),
        )
        user_json = _json_minify({**request, "task": task})
        messages = [
            {"role": "system", "content": system_prompt()},
            {"role": "user", "content": user_json},
        ]
        if repair_hint:
            messages.append({"role": "user", "content": repair_instruction(repair_hint)})
        logger.info(f"Oracle request JSON size={(len(user_json)/1024):.1f}KB candidates={len(request.get('candidates', []))}")
        logger.debug(f"Oracle user JSON preview: {user_json[:2000]}{'…' if len(user_json)>2000 else ''}")

        t0 = _now()
        resp = await self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=MAX_COMPLETION_TOKENS,
            temperature=0.0,
            response_format={"type": "json_object"},
        )
        dt = _now() - t0
        u = getattr(resp, "usage", None)
        logger.info(
            f"Oracle call model={getattr(resp, 'model', self.model)} duration={dt:.3f}s "
            f"tokens(prompt={getattr(u, 'prompt_tokens', None)}, completion={getattr(u, 'completion_tokens', None)})"
        )
        return resp.choices[0].message.content or ""

# =============================================================================
#                               SCORER CLIENT
# =============================================================================

class RelevanceScorer:
    """
    Thin client over the ranking oracle: builds the request, bounds the call
    with a timeout and validates/repairs whatever comes back.
    """

    def __init__(
        self,
        oracle: RankingOracle,
        *,
        timeout_s: float = 30.0,
        parse_retries: int = 1,
        min_items: int = SELECT_MIN,
        max_items: int = SELECT_MAX,
    ):
        self.oracle = oracle
        self.timeout_s = timeout_s
        self.parse_retries = parse_retries
        self.min_items = min_items
        self.max_items = max_items

    async def score(self, context: ScoringContext, candidates: CandidateSet) -> List[RankedItem]:
        if len(candidates) == 0:
            logger.info("No candidates to score, skipping oracle call")
            return []

        request = build_request(context, candidates)
        raw_items = await self._ask(request)

        ranked = repair_rankings(raw_items, candidates)
        selected = select_mixed(ranked, candidates, self.max_items)
        if len(selected) < self.min_items:
            logger.info(f"Oracle returned {len(selected)} usable rankings (target {self.min_items}-{self.max_items})")
        logger.info(f"Scoring done user_id={context.user_id} raw={len(raw_items)} kept={len(selected)}")
        return selected

    async def _ask(self, request: Dict[str, Any]) -> List[Any]:
        """
        Call the oracle, retrying only on unparseable output. `timeout_s` bounds
        the whole exchange, retries included.
        """
        hint: Optional[str] = None
        deadline = _now() + self.timeout_s
        for attempt in range(self.parse_retries + 1):
            remaining = deadline - _now()
            try:
                if remaining <= 0:
                    raise asyncio.TimeoutError()
                content = await asyncio.wait_for(self.oracle.rank(request, repair_hint=hint), timeout=remaining)
            except asyncio.TimeoutError as e:
                logger.error(f"Oracle timed out after {self.timeout_s}s")
                raise ScorerTimeout(f"Ranking oracle timed out after {self.timeout_s}s") from e
            except Exception as e:
                logger.error(f"Oracle call failed: {e}")
                raise ScorerUnavailable(f"Ranking oracle failed: {e}") from e

            try:
                return parse_ranking_list(content)
            except ValueError as e:
                hint = str(e)
                logger.warning(f"Malformed oracle response (attempt {attempt + 1}): {hint}")
        raise ScorerMalformedResponse(f"Ranking oracle response could not be parsed: {hint}")


def build_request(context: ScoringContext, candidates: CandidateSet) -> Dict[str, Any]:
    stage = context.stage
    return {
        "context": {
            "stageSignal": {
                "is_pregnancy": stage.is_pregnancy,
                "pregnancy_week": stage.pregnancy_week,
                "age_weeks": stage.age_weeks,
                "age_months": stage.months,
            },
            "budgetSignal": {
                "budget": context.budget,
                "preferred_source": context.preferred_source,
            } if context.budget else None,
            "season": context.season,
            "achieved_milestones": context.achieved_milestones,
        },
        "candidates": [_compact_candidate(c) for c in candidates.all()],
    }


def repair_rankings(raw_items: List[Any], candidates: CandidateSet) -> List[RankedItem]:
    """
    Validate each entry on its own. Entries that fail validation or point at
    a product that was not in the candidate pool are dropped; the rest stand.
    Result is de-duplicated and sorted by score (stable).
    """
    by_key: Dict[Tuple[str, str], CandidateProduct] = {}
    by_id: Dict[str, List[CandidateProduct]] = {}
    for c in candidates.all():
        by_key[(c.source, c.id)] = c
        by_id.setdefault(c.id, []).append(c)

    seen = set()
    out: List[RankedItem] = []
    invalid = unknown = 0
    for raw in raw_items:
        if not isinstance(raw, dict):
            invalid += 1
            continue
        try:
            item = OracleItem.model_validate(raw)
        except ValidationError as e:
            invalid += 1
            logger.debug(f"Dropping invalid ranking entry {raw!r}: {e.error_count()} errors")
            continue

        if item.source in (MARKETPLACE, AFFILIATE):
            cand = by_key.get((item.source, item.product_id))
        else:
            # No usable tag: accept only if the id is unambiguous across catalogs
            matches = by_id.get(item.product_id, [])
            cand = matches[0] if len(matches) == 1 else None
        if cand is None:
            unknown += 1
            continue

        key = (cand.source, cand.id)
        if key in seen:
            continue
        seen.add(key)
        out.append(RankedItem(
            product_id=cand.id,
            source=cand.source,
            relevance_score=item.relevance_score,
            reason=item.reason,
            urgency=item.urgency,
        ))

    if invalid or unknown:
        logger.warning(f"Dropped ranking entries invalid={invalid} unknown_candidate={unknown}")
    out.sort(key=lambda r: r.relevance_score, reverse=True)
    return out


def select_mixed(ranked: List[RankedItem], candidates: CandidateSet, max_items: int) -> List[RankedItem]:
    """
    Top `max_items`, but when both catalogs had eligible candidates and the
    oracle ranked something from each, keep at least one of each.
    """
    picked = list(ranked[:max_items])
    if not (candidates.marketplace and candidates.affiliate) or not picked:
        return picked
    for source in (MARKETPLACE, AFFILIATE):
        if any(r.source == source for r in picked):
            continue
        extra = next((r for r in ranked[max_items:] if r.source == source), None)
        if extra is not None:
            picked[-1] = extra
    picked.sort(key=lambda r: r.relevance_score, reverse=True)
    return picked

# =============================================================================
#                               JSON HELPERS
# =============================================================================

def _prune_empty(obj):
    """
    Recursively remove None, empty strings and empty lists/dicts.
    Keep: 0, False, and non-empty values.
    """
    if isinstance(obj, dict):
        out = {}
        for k, v in obj.items():
            pv = _prune_empty(v)
            if pv is None or (isinstance(pv, (list, dict)) and len(pv) == 0):
                continue
            out[k] = pv
        return out
    if isinstance(obj, list):
        out = []
        for v in obj:
            pv = _prune_empty(v)
            if pv is None or (isinstance(pv, (list, dict)) and len(pv) == 0):
                continue
            out.append(pv)
        return out
    if isinstance(obj, str):
        s = obj.strip()
        return s if s != "" else None
    return obj

def _json_minify(obj: Dict[str, Any]) -> str:
    return json.dumps(_prune_empty(obj), ensure_ascii=False, separators=(',', ':'))

def _compact_candidate(c: CandidateProduct) -> Dict[str, Any]:
    data = {
        "id": c.id,
        "source": c.source,
        "title": c.title,
        "category": c.category,
        "price": c.price,
        "age_range": c.age_range,
        "desc": (c.description or "")[:100],
    }
    if c.source == MARKETPLACE:
        data["condition"] = c.condition
    return data
