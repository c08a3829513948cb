"""
AI Agents for Prompt Finance

Every call to the Gemini model lives here.

CRITICAL BOUNDARIES:

1. COMMAND PARSING AGENT:
   - CAN: Turn free text into ONE expense or income transaction
   - CANNOT: Produce any other action (budgets, goals, debts ...)
   - MUST: Return UNKNOWN when amount, label or type is missing

2. CATEGORY / BUDGET SUGGESTION AGENTS:
   - CAN: Propose category ids and budget lines
   - CANNOT: Use category ids outside the eight built-in ones
   - CANNOT: Propose a budget larger than the income

3. REPORT NARRATION AGENT:
   - CAN: Write the narrative parts of a monthly report
   - CANNOT: Change any figure; it only sees the aggregated numbers

4. INSIGHTS AGENT:
   - CAN: Coach the user from the aggregated context
   - CANNOT: Invent data, give specific investment advice or promises

The LLM is a TRANSLATOR, not an ORACLE. Figures come from the
deterministic planners; the model only phrases them.

DESIGN DECISION: Each agent accepts an injected model object exposing
`generate_content_async`. Production code passes nothing and gets a
configured `genai.GenerativeModel`; tests pass a fake.
"""

import io
import json
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import google.generativeai as genai
import structlog
from PIL import Image, UnidentifiedImageError

from prompt_finance.config import GeminiSettings, get_settings
from prompt_finance.insights.reports import narration_context
from prompt_finance.models.commands import (
    CommandAction,
    CommandSource,
    ParsedCommand,
    TransactionPayload,
)
from prompt_finance.models.finance import (
    AiPersona,
    BuiltinCategory,
    Language,
    MonthlyReport,
    SubCategory,
    Transaction,
    TransactionType,
    UserProfile,
    floor_money,
)

logger = structlog.get_logger(__name__)

CATEGORY_IDS = [category.value for category in BuiltinCategory]

MAX_SUGGESTION_TRANSACTIONS = 50
MIN_INSIGHT_TRANSACTIONS = 3
RECEIPT_MAX_DIMENSION = 1600

PERSONA_TONES = {
    AiPersona.BENEVOLENT: (
        "Benevolent, non-judgmental, reassuring.",
        '"bad", "error", "failure", "wrong"',
    ),
    AiPersona.STRICT: (
        "Direct, disciplined, military-style coaching. Focus on discipline and facts. Use short sentences.",
        '"excuse", "maybe", "try"',
    ),
    AiPersona.HUMOROUS: (
        "Witty, sarcastic but helpful, fun. Use financial puns and light-hearted jokes.",
        "",
    ),
}


class BudgetSuggestionError(Exception):
    """The model could not produce a budget suggestion."""
    pass


class ReceiptValidationError(Exception):
    """The uploaded receipt image cannot be processed."""
    pass


def extract_json(text: str) -> Any:
    """
    Recover a JSON value from a model reply.

    Strips markdown code fences, then parses the outermost object or array.

    Raises:
        ValueError: If no JSON value can be found
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]

    candidates = []
    for opening, closing in (("{", "}"), ("[", "]")):
        start = cleaned.find(opening)
        end = cleaned.rfind(closing) + 1
        if start >= 0 and end > start:
            candidates.append((start, cleaned[start:end]))
    if not candidates:
        raise ValueError("No JSON found in model reply")

    # Whichever bracket opens first is the outer value
    candidates.sort(key=lambda candidate: candidate[0])
    return json.loads(candidates[0][1])


class GeminiAgent:
    """Shared model setup for every agent."""

    temperature: float = 0.1
    max_output_tokens: int = 512

    def __init__(self, model: Any = None, settings: Optional[GeminiSettings] = None):
        if model is not None:
            self._model = model
        else:
            self._settings = settings or get_settings().gemini
            self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self.temperature,
                "max_output_tokens": min(self.max_output_tokens, self._settings.max_tokens),
            }
        )

    async def _generate(self, contents: Any) -> str:
        response = await self._model.generate_content_async(contents)
        return (response.text or "").strip()


class CommandParsingAgent(GeminiAgent):
    """
    AI fallback for command-bar input the grammar did not recognise.

    Satisfies the parser's AiCommandParser protocol.
    """

    async def parse(self, text: str, today: Optional[date] = None) -> ParsedCommand:
        today = today or date.today()
        yesterday = today - timedelta(days=1)

        prompt = f"""Analyze the following user input to extract financial transaction details.
Determine if it's an 'expense' or 'income'. Extract the amount, a concise label, and categorize it.

Today is {today.isoformat()}. If the user says "yesterday", use {yesterday.isoformat()}.
If no date is mentioned, use null.

Valid categories: {', '.join(CATEGORY_IDS)}

Respond with ONLY a JSON object in this exact format:
{{"type": "expense", "amount": 12.5, "label": "lunch", "category": "foodAndDining", "date": null}}

Parse this text: "{text}"
"""

        try:
            data = extract_json(await self._generate(prompt))
        except Exception as e:
            logger.warning("ai_parse_failed", error=str(e))
            return ParsedCommand.unknown()

        if not isinstance(data, dict):
            return ParsedCommand.unknown()

        try:
            amount = Decimal(str(data.get("amount")))
            label = str(data.get("label") or "").strip()
            transaction_type = TransactionType(data.get("type"))
        except (InvalidOperation, ValueError):
            return ParsedCommand.unknown()
        if not amount.is_finite() or amount <= 0 or not label:
            return ParsedCommand.unknown()

        category = data.get("category")
        if category not in CATEGORY_IDS:
            category = BuiltinCategory.GENERAL.value

        when = None
        if data.get("date"):
            try:
                when = datetime.combine(date.fromisoformat(str(data["date"])[:10]), time(12))
            except ValueError:
                when = None

        return ParsedCommand(
            action=CommandAction.ADD_TRANSACTION,
            payload=TransactionPayload(
                type=transaction_type,
                amount=amount,
                label=label,
                category=category,
                date=when,
            ),
            source=CommandSource.AI,
        )


class CategoryAgent(GeminiAgent):
    """Picks a built-in category for a transaction label."""

    temperature = 0.0
    max_output_tokens = 64

    async def suggest_category(self, label: str) -> str:
        prompt = f"""Based on the transaction label "{label}", what is the most appropriate category?

Available categories: {', '.join(CATEGORY_IDS)}

Respond with ONLY a JSON object: {{"category": "category_id"}}"""

        try:
            data = extract_json(await self._generate(prompt))
            category = data.get("category") if isinstance(data, dict) else None
            if category in CATEGORY_IDS:
                return category
        except Exception as e:
            logger.warning("category_suggestion_failed", label=label, error=str(e))
        return BuiltinCategory.GENERAL.value


class BudgetSuggestionAgent(GeminiAgent):
    """Proposes budget lines from past spending."""

    max_output_tokens = 2048

    async def suggest_budget(
        self,
        transactions: list[Transaction],
        income: Decimal,
    ) -> list[SubCategory]:
        """
        Suggest monthly budget lines for an income.

        The total never exceeds the income: when the model overshoots,
        every line is scaled down proportionally and floored.

        Raises:
            BudgetSuggestionError: If the model call or its reply fails
        """
        expenses = [t for t in transactions if t.type == TransactionType.EXPENSE]
        if not expenses:
            return []

        rows = [
            {
                "amount": str(t.amount),
                "label": t.label,
                "category": t.category,
                "date": t.date.date().isoformat(),
            }
            for t in expenses[:MAX_SUGGESTION_TRANSACTIONS]
        ]

        prompt = f"""Based on the provided monthly income of {income} and the following list of past expense transactions, generate a realistic and sensible monthly budget.

Your task is to:
1. Analyze the spending habits from the transactions.
2. Create a list of budget sub-categories with a planned amount for each.
3. The total of all planned amounts MUST NOT exceed the monthly income.
4. Assign each sub-category to one of these categoryId values: {', '.join(CATEGORY_IDS)}
5. Provide a diverse range of sub-categories (e.g. 'Rent', 'Groceries', 'Internet Bill', 'Restaurants').
6. If there are savings-related transactions (e.g. contributions to goals), create a 'Savings' sub-category under the 'general' category.

Respond with ONLY a JSON array:
[{{"name": "Groceries", "plannedAmount": 300, "categoryId": "foodAndDining"}}]

Transactions:
{json.dumps(rows)}"""

        try:
            data = extract_json(await self._generate(prompt))
            if not isinstance(data, list):
                raise ValueError("Expected a JSON array of budget lines")
            lines = []
            for item in data:
                category = item.get("categoryId")
                lines.append(SubCategory(
                    name=str(item["name"]),
                    planned_amount=Decimal(str(item["plannedAmount"])),
                    category_id=category if category in CATEGORY_IDS else BuiltinCategory.GENERAL.value,
                ))
        except Exception as e:
            logger.error("budget_suggestion_failed", error=str(e))
            raise BudgetSuggestionError("Failed to generate AI budget suggestion.") from e

        total = sum((line.planned_amount for line in lines), Decimal("0"))
        if total > income:
            factor = income / total
            lines = [
                line.model_copy(update={"planned_amount": floor_money(line.planned_amount * factor)})
                for line in lines
            ]
        return lines


class ReportNarrationAgent(GeminiAgent):
    """Writes the narrative half of a monthly report."""

    temperature = 0.4
    max_output_tokens = 2048

    async def narrate(
        self,
        report: MonthlyReport,
        persona: AiPersona,
        language: Language = Language.EN,
    ) -> MonthlyReport:
        """
        Return a copy of the report with summary, analysis and three tips.

        On any failure the report comes back unchanged, still carrying its
        fallback text.
        """
        context = narration_context(report, persona)
        prompt = f"""You are an expert financial analyst and coach. Generate a monthly financial report for a user based on the provided data.

User Persona: {persona.value} (Adjust tone accordingly: benevolent=gentle, strict=direct/military, humorous=witty/sarcastic).
Language: {language.value}
Data: {json.dumps(context)}

Requirements:
1. executiveSummary: A concise paragraph summarizing the financial health of the month.
2. behavioralAnalysis: Analyze spending habits. Point out positives and risk zones.
3. coachingTips: Exactly 3 actionable, concrete tips for next month based on the data.

Respond with ONLY a JSON object:
{{"executiveSummary": "...", "behavioralAnalysis": "...", "coachingTips": ["...", "...", "..."]}}"""

        try:
            data = extract_json(await self._generate(prompt))
            summary = str(data["executiveSummary"]).strip()
            analysis = str(data["behavioralAnalysis"]).strip()
            tips = [str(tip).strip() for tip in data["coachingTips"] if str(tip).strip()]
            if not summary or not analysis or not tips:
                raise ValueError("Incomplete narration")
        except Exception as e:
            logger.warning("report_narration_failed", report_id=report.id, error=str(e))
            return report

        return report.model_copy(update={
            "executive_summary": summary,
            "behavioral_analysis": analysis,
            "actionable_tips": tips[:3],
        })


class ReceiptScanAgent(GeminiAgent):
    """
    Reads a receipt photo into a command-bar line such as "25.50 Starbucks".

    The image is validated and downsized with Pillow before it is sent.
    """

    max_output_tokens = 64

    def __init__(
        self,
        model: Any = None,
        settings: Optional[GeminiSettings] = None,
        supported_formats: Optional[list[str]] = None,
        max_size_bytes: Optional[int] = None,
    ):
        super().__init__(model=model, settings=settings)
        app_settings = None
        if supported_formats is None or max_size_bytes is None:
            app_settings = get_settings().app
        self._formats = supported_formats or app_settings.supported_formats_list
        self._max_size = max_size_bytes or app_settings.max_receipt_size_bytes

    def validate(self, image_bytes: bytes, mime_type: str) -> Image.Image:
        """
        Check format and size, then open and shrink the image.

        Raises:
            ReceiptValidationError: Unsupported type, too large, or unreadable
        """
        subtype = mime_type.split("/")[-1].lower()
        if subtype not in self._formats:
            raise ReceiptValidationError(
                f"Unsupported receipt format '{mime_type}'. Supported: {', '.join(self._formats)}"
            )
        if len(image_bytes) > self._max_size:
            raise ReceiptValidationError(
                f"Receipt image is {len(image_bytes)} bytes; the limit is {self._max_size}"
            )
        try:
            image = Image.open(io.BytesIO(image_bytes))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise ReceiptValidationError(f"Could not read receipt image: {e}")

        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        image.thumbnail((RECEIPT_MAX_DIMENSION, RECEIPT_MAX_DIMENSION))
        return image

    async def scan_receipt(self, image_bytes: bytes, mime_type: str) -> Optional[str]:
        """
        Returns:
            "AMOUNT MERCHANT", or None when the receipt cannot be read

        Raises:
            ReceiptValidationError: If the image is rejected before the call
        """
        image = self.validate(image_bytes, mime_type)
        prompt = """Analyze this receipt image.
Extract the Total Amount and the Merchant Name.

Output ONLY a single text line in this format:
AMOUNT MERCHANT_NAME

Example: "25.50 Starbucks" or "120.00 Walmart"

If you cannot read the receipt or find the total, return exactly: ERROR
Do not add any other text, markdown, or explanation."""

        try:
            text = await self._generate([image, prompt])
        except Exception as e:
            logger.warning("receipt_scan_failed", error=str(e))
            return None

        if not text or text == "ERROR":
            return None
        return text.replace("**", "").strip()


class InsightsAgent(GeminiAgent):
    """
    The financial coach.

    It answers from the aggregated context produced by the query executor
    and never sees the raw state.
    """

    temperature = 0.6
    max_output_tokens = 2048

    NOT_ENOUGH_DATA = "Add at least 3 transactions so the coach has something to analyze."
    UNAVAILABLE = "The coach is unavailable right now. Please try again later."

    def _instructions(
        self,
        context: dict[str, Any],
        persona: AiPersona,
        profile: UserProfile,
        language: Language,
    ) -> str:
        tone, forbidden = PERSONA_TONES[persona]
        return f"""You are the user's AI Financial Coach & Intelligence Assistant.

CRITICAL BEHAVIORAL PRINCIPLES (MUST FOLLOW):
- Tone: {tone}
- Profile Awareness:
    - Maturity: {profile.metrics.maturity_score}/100 (adapt complexity accordingly).
    - Stress: {profile.inferred.stress_level.value} (be extra gentle if high).
    - Learning Style: {profile.learning_style.value}.
- FORBIDDEN WORDS: {forbidden or "none"}.
- Pedagogy: Explain concepts BEFORE recommending actions.
- Proactivity: Max 3 recommendations at a time.
- Neutrality: NO specific investment advice. NO financial promises.
- Use ONLY the context data below for any figure about the user. Never invent numbers.

For coaching answers use: Observation, Importance, Suggestion, optional Action.
For educational answers use: Definition, Importance, Example, Personal Link.

CONTEXT DATA:
{json.dumps(context, default=str)}

Respond in {"French" if language == Language.FR else "English"}."""

    async def ask(
        self,
        question: str,
        context: dict[str, Any],
        persona: AiPersona,
        profile: UserProfile,
        transaction_count: int,
        language: Language = Language.EN,
    ) -> str:
        if transaction_count < MIN_INSIGHT_TRANSACTIONS:
            return self.NOT_ENOUGH_DATA

        prompt = f"{self._instructions(context, persona, profile, language)}\n\nUser question: {question}"
        try:
            answer = await self._generate(prompt)
        except Exception as e:
            logger.warning("insights_failed", error=str(e))
            return self.UNAVAILABLE
        return answer or self.UNAVAILABLE
