import json
import logging
import re
from datetime import datetime
from typing import Any, Callable, List, Optional

import pytz
from google import genai
from google.genai import types
from pydantic import TypeAdapter, ValidationError

from finboard.core.config import settings
from finboard.core.errors import AnalysisError
from finboard.models.plan import FinancialPlan, ProjectionResult
from finboard.models.stock import StockAnalysis
from finboard.services.credential_service import CredentialService

logger = logging.getLogger(__name__)

# Query hints for Taiwan symbols the model tends to confuse
QUERY_SYMBOL_HINTS = {
    "2834": "2834 臺企銀",
    "304": "3042 晶技",
    "3042": "3042 晶技",
    "4564": "4564 元翎",
    "6890": "6890 來億-KY",
    "1101": "1101 台泥",
    "9904": "9904 寶成",
}

ADVICE_FALLBACK = "無法產生建議，請稍後再試。"

STOCK_JSON_SCHEMA = """
        [
          {
            "symbol": "ticker code, e.g. 0050",
            "name": "company name in Traditional Chinese",
            "marketCap": "market cap label, e.g. 3000億",
            "high52Week": <number>,
            "low52Week": <number>,
            "currentPrice": <number, following the price-time rule>,
            "suggestBuyPrice": <number>,
            "suggestSellPrice": <number>,
            "recommendation": "BUY" | "SELL" | "HOLD",
            "analysis": "short analysis citing the latest news or price move",
            "projectedAnnualYield": "projected annual yield range, e.g. 5-6%",
            "exampleScenario": "short example of how to act on it"
          }
        ]
"""

_analyses_adapter = TypeAdapter(List[StockAnalysis])


def query_symbol(symbol: str) -> str:
    clean = symbol.strip()
    if clean in QUERY_SYMBOL_HINTS:
        return QUERY_SYMBOL_HINTS[clean]
    if "4564" in clean:
        return QUERY_SYMBOL_HINTS["4564"]
    return clean


def price_time_rule(now: datetime) -> str:
    """
    Which price the model must report, based on the Taiwan trading session
    (09:00 open, 13:30 close) at `now` in the market timezone.
    """
    hhmm = now.hour * 100 + now.minute
    if hhmm >= 1330:
        return ("The market has closed (after 13:30). Report TODAY's closing price, "
                "not yesterday's and not an intraday quote.")
    if hhmm < 900:
        return ("The market has not opened yet (before 09:00). Report the previous "
                "trading day's closing price.")
    return "The market is open (09:00 - 13:30). Report the latest real-time trade price."


def extract_json(text: str) -> Any:
    """
    Pulls JSON out of free-form model output: a ```json fenced block first,
    then the outermost [...] span, then the whole text.

    Raises:
        AnalysisError: if none of those parse.
    """
    candidates = []
    fenced = re.search(r"```json([\s\S]*?)```", text)
    if fenced:
        candidates.append(fenced.group(1))
    start, end = text.find("["), text.rfind("]")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])
    candidates.append(text)

    for candidate in candidates:
        try:
            return json.loads(candidate.strip())
        except ValueError:
            continue

    logger.error(f"Failed to parse JSON from AI response: {text[:500]!r}")
    raise AnalysisError("The AI response could not be read. Please try again later.")


def parse_stock_analyses(text: str) -> List[StockAnalysis]:
    parsed = extract_json(text)

    if isinstance(parsed, dict):
        # Model may wrap the array, e.g. {"stocks": [...]}, or return a single object
        lists = [v for v in parsed.values() if isinstance(v, list)]
        parsed = lists[0] if lists else [parsed]

    if not isinstance(parsed, list):
        raise AnalysisError("The AI response was not a list of stocks.")

    try:
        return _analyses_adapter.validate_python(parsed)
    except ValidationError as e:
        logger.error(f"AI returned malformed stock entries: {e}")
        raise AnalysisError("The AI response did not match the expected stock format.") from e


class AIService:
    """
    Gemini client for stock analysis, market trends and retirement advice.

    Each call is one attempt; failures surface as AnalysisError and callers
    keep their existing state. A missing key raises CredentialMissingError
    before any network traffic.
    """
    def __init__(
        self,
        credentials: CredentialService,
        client_factory: Callable[..., Any] = genai.Client,
        now: Optional[Callable[[], datetime]] = None,
        model: Optional[str] = None,
    ):
        self.credentials = credentials
        self.client_factory = client_factory
        self.now = now or (lambda: datetime.now(pytz.timezone(settings.MARKET_TIMEZONE)))
        self.model = model or settings.GEMINI_MODEL

    def _time_instruction(self) -> str:
        now = self.now()
        return f"""
        The current Taipei time is {now.strftime('%Y/%m/%d %H:%M')}.

        PRICE-TIME RULE (very important):
        {price_time_rule(now)}

        Check the timestamps of the Google Search results to make sure they satisfy this rule.
        """

    async def _generate(self, prompt: str, grounded: bool) -> str:
        api_key = self.credentials.require()
        config = None
        if grounded:
            config = types.GenerateContentConfig(
                tools=[types.Tool(google_search=types.GoogleSearch())]
            )

        try:
            client = self.client_factory(api_key=api_key)
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=config
            )
        except Exception as e:
            logger.error(f"Gemini request failed: {e}")
            raise AnalysisError(
                "Could not reach the AI service. Check that your API key is valid, or try again later."
            ) from e

        return response.text or ""

    async def analyze_portfolio(self, symbols: List[str]) -> List[StockAnalysis]:
        if not symbols:
            return []

        query_symbols = ", ".join(query_symbol(s) for s in symbols)
        prompt = f"""
        You are a professional financial analysis system. Use Google Search to look up the
        correct Traditional Chinese company name and the latest share price for: {query_symbols}.

        {self._time_instruction()}

        SYMBOL CORRECTIONS (do not mix these up):
        1. 2834 is 臺企銀 (Taiwan Business Bank), never 台泥.
        2. 3042 is 晶技 (TXC).
        3. 6890 is 來億-KY.
        4. An input of "304" means "3042 晶技".

        GENERAL INSTRUCTIONS:
        1. Use Google Search for real data, never estimates.
        2. currentPrice must follow the price-time rule above.
        3. Give a BUY / SELL / HOLD recommendation for holding each stock.

        Return a plain JSON array and nothing else, in this format:
        {STOCK_JSON_SCHEMA}
        """

        logger.info(f"Requesting analysis for {len(symbols)} symbols")
        text = await self._generate(prompt, grounded=True)
        return parse_stock_analyses(text or "[]")

    async def analyze_market_trends(self) -> List[StockAnalysis]:
        prompt = f"""
        Use Google Search to scan today's (or the last 3 days') Taiwan stock market (TWSE/TPEX)
        headlines, volume rankings and institutional buy/sell activity. Pick the 3 stocks that
        are the most discussed or show the clearest trend right now.

        {self._time_instruction()}

        IMPORTANT:
        1. Use the search tool so currentPrice follows the price-time rule.
        2. The analysis field must name the news or event that made the stock popular.
        3. Company names must be accurate (e.g. 2834 is 臺企銀).

        Return a plain JSON array and nothing else, in this format:
        {STOCK_JSON_SCHEMA}
        """

        logger.info("Requesting market trends")
        text = await self._generate(prompt, grounded=True)
        return parse_stock_analyses(text or "[]")

    async def get_retirement_advice(self, plan: FinancialPlan, result: ProjectionResult) -> str:
        prompt = f"""
        The user is planning for retirement.

        CURRENT SITUATION:
        - Current age: {plan.currentAge}
        - Planned retirement age: {plan.retirementAge}
        - Current assets: {plan.currentSavings:.0f}
        - Monthly savings: {plan.monthlySavings:.0f}
        - Expected annual return: {plan.expectedAnnualReturn}%
        - Target monthly pension after retirement: {plan.targetMonthlyPension:.0f}

        PROJECTION:
        - Years until retirement: {plan.retirementAge - plan.currentAge}
        - Projected assets at retirement: {result.totalAccumulated:.0f}
        - Monthly withdrawal under the 4% rule: {result.monthlyPensionPossible:.0f}
        - Goal reachable: {'yes' if result.isGoalReachable else 'no'}

        Write about 150 words of professional financial advice in Traditional Chinese.
        If the goal is not reached, propose concrete improvements (savings rate, portfolio
        risk allocation, and so on); otherwise affirm the plan. Warm but professional tone.
        """

        text = await self._generate(prompt, grounded=False)
        return text.strip() or ADVICE_FALLBACK
