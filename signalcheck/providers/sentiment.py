"""Batch market-relevance and sentiment classification with an LLM.

Pipeline:
    [ArticleInput] → one chat completion → JSON array → {article_id: Verdict}

The model is reached through the ``openai`` client; by default it talks to
Gemini's OpenAI-compatible endpoint, but any compatible base URL works.

Parsing is deliberately forgiving per record and strict per batch:
    * markdown code fences around the JSON are stripped;
    * a missing or malformed field falls back to its default
      (``False``, ``[]``, ``0.0``, ``""``);
    * a response that is not a JSON array yields ``{}`` and the whole batch is
      retried on the next run;
    * entries for ids outside the batch are ignored, and batch ids absent from
      the response get no verdict.
"""

import json
import math
import os
import re
from typing import Any, Dict, List, Optional, Sequence

import openai
from openai import OpenAI

from signalcheck.core.logger import logger
from signalcheck.core.retry import with_retries
from signalcheck.models.datatypes import ArticleInput, Verdict

MAX_BATCH_SIZE = 20

_TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")

_INSTRUCTIONS = """You are screening news articles for their effect on individual US-listed stocks.

For every article decide:
1. marketRelevant: true if it concerns a specific company, stock, sector, market, economic
   policy, trade or tariffs, or a major macro-economic event. Consumer advice, shopping tips,
   personal finance and lifestyle stories are NOT market relevant.
2. tickers: exactly ONE ticker symbol, the single stock most directly affected (e.g. AAPL).
   Never list several. If no single company clearly stands out, set marketRelevant=false
   and tickers=[].
3. sentiment: a number from -1.0 (very bearish) to 1.0 (very bullish) for that ticker,
   0.0 when the article is not market relevant.
4. reasoning: one short sentence.

Articles:
"""

_OUTPUT_FORMAT = """
Respond with ONLY a JSON array, one object per article, in this shape:
[
  {"id": "<article id>", "marketRelevant": true, "tickers": ["TSLA"], "sentiment": 0.7,
   "reasoning": "<one sentence>"}
]
Every article above MUST appear in the array, including irrelevant ones
(marketRelevant=false, tickers=[], sentiment=0.0).
"""


# ── field parsers ────────────────────────────────────────────────────────────

def parse_bool(value: Any, default: bool = False) -> bool:
    """JSON booleans and ``"true"``/``"false"`` strings; anything else → ``default``."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return default


def parse_tickers(value: Any) -> List[str]:
    """Upper-cased, de-duplicated symbols; a bare string counts as one symbol. Default ``[]``."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    tickers: List[str] = []
    for item in value:
        if not isinstance(item, str):
            continue
        symbol = item.strip().upper().lstrip("$").strip()
        if symbol and symbol not in tickers:
            tickers.append(symbol)
    return tickers


def parse_sentiment(value: Any, default: float = 0.0) -> float:
    """Finite number clamped to ``[-1.0, 1.0]``; non-numeric or NaN → ``default``."""
    if isinstance(value, bool):
        return default
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return default
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return default
    clamped = max(-1.0, min(1.0, float(value)))
    if clamped != value:
        logger.warning(f"SentimentClassifier: sentiment {value} clamped to {clamped}")
    return clamped


def parse_text(value: Any, default: str = "") -> str:
    return value.strip() if isinstance(value, str) else default


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence such as ```json ... ```."""
    return _FENCE_RE.sub("", text.strip()).strip()


def parse_verdict(node: Dict[str, Any]) -> Verdict:
    """Parse one response object field by field."""
    return Verdict(
        market_relevant=parse_bool(node.get("marketRelevant")),
        tickers=parse_tickers(node.get("tickers")),
        sentiment=parse_sentiment(node.get("sentiment")),
        reasoning=parse_text(node.get("reasoning")),
    )


def parse_batch_response(response: str, batch_ids: Sequence[str]) -> Dict[str, Verdict]:
    """
    Map article ids of ``batch_ids`` to verdicts found in ``response``.

    Args:
        response: Raw model output.
        batch_ids: Ids that were sent; anything else in the response is dropped.

    Returns:
        Dict[str, Verdict]: Possibly partial; empty if the payload is unusable.
    """
    try:
        payload = json.loads(strip_code_fence(response or ""))
    except json.JSONDecodeError as exc:
        logger.error(f"SentimentClassifier: unparseable response ({exc}): {response!r:.300}")
        return {}
    if not isinstance(payload, list):
        logger.error(f"SentimentClassifier: expected a JSON array, got {type(payload).__name__}")
        return {}

    wanted = set(batch_ids)
    results: Dict[str, Verdict] = {}
    for node in payload:
        if not isinstance(node, dict):
            logger.warning(f"SentimentClassifier: skipping non-object entry {node!r:.80}")
            continue
        article_id = node.get("id")
        article_id = str(article_id).strip() if article_id is not None else ""
        if article_id not in wanted:
            logger.warning(f"SentimentClassifier: ignoring verdict for unknown id {article_id!r}")
            continue
        if article_id in results:
            logger.warning(f"SentimentClassifier: duplicate verdict for {article_id}, keeping the first")
            continue
        results[article_id] = parse_verdict(node)

    missing = wanted - set(results)
    if missing:
        logger.warning(
            f"SentimentClassifier: {len(missing)} article(s) missing from response, "
            f"left pending: {sorted(missing)[:5]}"
        )
    return results


def build_prompt(articles: Sequence[ArticleInput]) -> str:
    lines = [_INSTRUCTIONS]
    for i, article in enumerate(articles):
        lines.append(
            f"\n[{i}] ID: {article.id}\nHeadline: {article.headline}\nSummary: {article.summary or ''}\n"
        )
    lines.append(_OUTPUT_FORMAT)
    return "".join(lines)


class SentimentClassifier:
    """One LLM request per batch of at most :data:`MAX_BATCH_SIZE` articles.

    Args:
        api_key: Key for the configured endpoint.
        model: Model name.
        base_url: OpenAI-compatible endpoint; ``None`` means api.openai.com.
        temperature: Sampling temperature; kept low for stable scores.
        max_retries: Retries for connection errors, 429s and 5xx responses.
        client: Pre-built client (tests pass a fake).
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "gemini-2.5-flash",
        base_url: Optional[str] = None,
        temperature: float = 0.1,
        max_retries: int = 2,
        client: Optional[Any] = None,
    ) -> None:
        self.client = client or OpenAI(api_key=api_key, base_url=base_url, max_retries=0)
        self.model = model
        self.temperature = temperature
        self.api_calls = 0
        self._complete = with_retries(
            max_retries=max_retries, initial_delay=2, exceptions=_TRANSIENT_ERRORS,
        )(self._complete_once)

    @classmethod
    def from_config(cls, config: dict, client: Optional[Any] = None) -> "SentimentClassifier":
        llm = config["llm"]
        return cls(
            api_key=os.getenv(llm.get("api_key_env", "GEMINI_API_KEY"), ""),
            model=llm.get("model", "gemini-2.5-flash"),
            base_url=llm.get("base_url"),
            temperature=llm.get("temperature", 0.1),
            max_retries=llm.get("max_retries", 2),
            client=client,
        )

    def _complete_once(self, prompt: str) -> str:
        self.api_calls += 1
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
        )
        choices = getattr(response, "choices", None) or []
        if not choices:
            logger.warning("SentimentClassifier: response carried no choices")
            return ""
        message = getattr(choices[0], "message", None)
        return getattr(message, "content", None) or ""

    def analyze_batch(self, articles: Sequence[ArticleInput]) -> Dict[str, Verdict]:
        """
        Classify ``articles`` with a single model call.

        Args:
            articles: Batch in the order they should be presented.

        Returns:
            Dict[str, Verdict]: Verdicts keyed by article id; ``{}`` on any failure.

        Raises:
            ValueError: If the batch exceeds :data:`MAX_BATCH_SIZE`.
        """
        if not articles:
            return {}
        if len(articles) > MAX_BATCH_SIZE:
            raise ValueError(f"batch of {len(articles)} exceeds the limit of {MAX_BATCH_SIZE}")

        prompt = build_prompt(articles)
        try:
            response = self._complete(prompt)
        except openai.OpenAIError as exc:
            logger.error(f"SentimentClassifier: model call failed for batch of {len(articles)}: {exc}")
            return {}

        logger.debug(f"SentimentClassifier: raw response {response!r:.500}")
        results = parse_batch_response(response, [a.id for a in articles])
        logger.info(f"SentimentClassifier: parsed {len(results)}/{len(articles)} verdicts")
        return results
