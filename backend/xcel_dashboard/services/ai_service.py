"""
AI Service - widget generation, file analysis and combination insights

The AI model is an opaque collaborator reached through the OpenAI (or Azure
OpenAI) chat completions API. Every call is bounded by the configured timeout;
timeouts, API errors and unreadable answers surface as AIUnavailable so the
user can retry. Nothing here invents results when the model fails.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from openai import APITimeoutError, AzureOpenAI, OpenAI, OpenAIError

from xcel_dashboard.config import settings
from xcel_dashboard.core.exceptions import AIUnavailable
from xcel_dashboard.models.uploaded_file import UploadedFile
from xcel_dashboard.services.column_analysis import profile_columns

logger = logging.getLogger(__name__)

INSIGHT_LISTS = (
    "data_insights",
    "key_discoveries",
    "business_opportunities",
    "data_quality_insights",
    "analytics_recommendations",
)

DERIVATION_OPS = ("sum", "difference", "product", "ratio", "concat")

WIDGET_FIELDS = {
    "kpi": '"column": "numeric column name", "function": "sum|average|count|min|max"',
    "bar_chart": '"x_axis": "category column", "y_axis": "numeric column"',
    "pie_chart": '"category_column": "category column", "value_column": "numeric column"',
    "table": '"columns": ["column names to show"]',
}


def parse_json_response(content: str) -> Dict[str, Any]:
    """Extract the JSON object from a model answer.

    Handles markdown code fences and prose around the object.
    """
    text = (content or "").strip()
    if text.startswith("```"):
        text = text.split("```")[1]
        if text.startswith("json"):
            text = text[4:]

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise AIUnavailable("AI returned a response without JSON, please retry")

    try:
        parsed = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse AI JSON response: {e}")
        raise AIUnavailable("AI returned an unreadable response, please retry")

    if not isinstance(parsed, dict):
        raise AIUnavailable("AI returned an unexpected response, please retry")
    return parsed


def widget_key(name: str) -> str:
    """Key the model uses for a widget: lower case, spaces as underscores"""
    return (name or "").strip().lower().replace(" ", "_")


def _format_column_analysis(analysis: Dict[str, Dict[str, Any]]) -> str:
    lines = []
    for column, info in analysis.items():
        kind = "numeric" if info["is_primarily_numeric"] else "text"
        lines.append(
            f"- {column}: {info['total_values']} values, {info['unique_values']} unique, {kind}"
        )
    return "\n".join(lines)


class AIService:
    """Service for AI-assisted widget and combination features"""

    def __init__(self, client: Any = None, model: Optional[str] = None):
        """Initialize with an explicit client, or build one from settings"""
        if client is not None:
            self.client = client
            self.model = model or settings.OPENAI_MODEL
        elif settings.AI_PROVIDER == "azure" and settings.ai_enabled:
            self.client = AzureOpenAI(
                api_key=settings.AZURE_OPENAI_KEY,
                api_version=settings.AZURE_OPENAI_API_VERSION,
                azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
                timeout=settings.AI_TIMEOUT_SECONDS,
                max_retries=settings.AI_MAX_RETRIES,
            )
            self.model = settings.AZURE_OPENAI_DEPLOYMENT
            logger.info(f"Initialized Azure OpenAI with deployment: {self.model}")
        elif settings.AI_PROVIDER == "openai" and settings.ai_enabled:
            self.client = OpenAI(
                api_key=settings.OPENAI_API_KEY,
                base_url=settings.OPENAI_BASE_URL or None,
                timeout=settings.AI_TIMEOUT_SECONDS,
                max_retries=settings.AI_MAX_RETRIES,
            )
            self.model = settings.OPENAI_MODEL
            logger.info(f"Initialized OpenAI with model: {self.model}")
        else:
            logger.warning("AI provider not configured, AI features are unavailable")
            self.client = None
            self.model = None

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def _complete(self, system: str, prompt: str, temperature: float = 0.3, max_tokens: int = 1000) -> Dict[str, Any]:
        """Run one chat completion and return its JSON payload"""
        if not self.client:
            raise AIUnavailable("AI provider is not configured", retryable=False)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except APITimeoutError as e:
            logger.error(f"AI request timed out: {e}")
            raise AIUnavailable("AI request timed out, please retry") from e
        except OpenAIError as e:
            logger.error(f"AI request failed: {e}")
            raise AIUnavailable(f"AI request failed: {e}") from e

        content = response.choices[0].message.content or ""
        logger.info(f"AI response received: {len(content)} characters")
        return parse_json_response(content)

    def generate_widget(
        self,
        file: UploadedFile,
        widget_type: str,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Ask the model to pick columns and a function for a new widget

        Args:
            file: Completed file the widget reads
            widget_type: kpi, bar_chart, pie_chart or table
            description: Optional free text from the user

        Returns:
            Raw answer with ``name``, the type's column fields, ``description``
            and optional ``insights``. The caller validates it.
        """
        headers = file.headers
        rows = file.rows
        analysis = profile_columns(headers, rows)
        sample = rows[:settings.PREVIEW_SAMPLE_ROWS]

        request = description or "Pick the most useful widget of this type for a business dashboard."
        prompt = f"""Design one {widget_type} dashboard widget for this spreadsheet.

File: {file.original_filename}
Total Rows: {file.total_rows}
Headers: {', '.join(headers)}

Column Analysis:
{_format_column_analysis(analysis)}

Sample Data (first {len(sample)} rows):
{json.dumps(sample, indent=2, default=str)}

User request: {request}

Respond with JSON only:
{{
  "name": "short widget title",
  {WIDGET_FIELDS[widget_type]},
  "description": "one sentence shown on the widget card",
  "insights": {{"description": "what this widget reveals", "trend": "optional trend note"}}
}}
Use only column names from the headers above."""

        return self._complete(
            "You are an expert data analyst designing Excel dashboard widgets. Respond with ONLY valid JSON.",
            prompt,
            temperature=0.2,
            max_tokens=500,
        )

    def analyze_file(self, file: UploadedFile, widget_names: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        General AI insights for one completed file

        Args:
            file: Completed file to analyze
            widget_names: Names of the file's widgets; the answer then carries
                ``widget_insights`` keyed by ``widget_key(name)``
        """
        headers = file.headers
        rows = file.rows
        if not rows:
            raise AIUnavailable("File has no data rows to analyze", retryable=False)

        analysis = profile_columns(headers, rows)
        sample = rows[:settings.PREVIEW_SAMPLE_ROWS]
        widget_keys = [widget_key(name) for name in widget_names or []]

        prompt = f"""Analyze this Excel data for a business dashboard.

File: {file.original_filename}
Total Rows: {file.total_rows}
Total Columns: {file.total_columns}
Headers: {', '.join(headers)}

Column Analysis:
{_format_column_analysis(analysis)}

Sample Data (first {len(sample)} rows):
{json.dumps(sample, indent=2, default=str)}

Dashboard widgets: {', '.join(widget_keys) or 'none yet'}

Respond with JSON only:
{{
  "summary": "what the data represents",
  "data_insights": ["insight"],
  "recommendations": ["recommendation"],
  "widget_insights": {{
    "widget_key": {{"trend": "+X% or -X%", "description": "string", "source_column": "column"}}
  }},
  "chart_recommendations": {{
    "bar_chart": {{"title": "string", "x_axis": "column", "y_axis": "column", "description": "string"}},
    "pie_chart": {{"title": "string", "category_column": "column", "value_column": "column", "description": "string"}}
  }}
}}
Key widget_insights by the widget keys listed above."""

        insights = self._complete(
            "You are an expert data analyst specializing in Excel data analysis and business intelligence.",
            prompt,
        )
        logger.info(f"AI analysis completed for file {file.id}")
        return insights

    def suggest_widgets(self, file: UploadedFile, limit: int = 6) -> List[Dict[str, Any]]:
        """Widget ideas for a file; each entry has the fields of generate_widget plus widget_type"""
        headers = file.headers
        rows = file.rows
        analysis = profile_columns(headers, rows)
        sample = rows[:settings.PREVIEW_SAMPLE_ROWS]
        shapes = "\n".join(f"- {kind}: {fields}" for kind, fields in WIDGET_FIELDS.items())

        prompt = f"""Suggest up to {limit} dashboard widgets for this spreadsheet.

File: {file.original_filename}
Total Rows: {file.total_rows}
Headers: {', '.join(headers)}

Column Analysis:
{_format_column_analysis(analysis)}

Sample Data (first {len(sample)} rows):
{json.dumps(sample, indent=2, default=str)}

Fields per widget type:
{shapes}

Respond with JSON only:
{{
  "suggestions": [
    {{"widget_type": "kpi", "name": "short widget title", "column": "Sales", "function": "sum", "description": "why it matters"}}
  ]
}}
Use only column names from the headers above."""

        answer = self._complete(
            "You are an expert data analyst designing Excel dashboards. Respond with ONLY valid JSON.",
            prompt,
            temperature=0.3,
            max_tokens=1200,
        )
        suggestions = answer.get("suggestions")
        if not isinstance(suggestions, list):
            raise AIUnavailable("AI returned no widget suggestions, please retry")
        return [s for s in suggestions if isinstance(s, dict)][:limit]

    def combination_insights(
        self,
        members: List[Dict[str, Any]],
        base_headers: List[str],
        numeric_headers: List[str],
    ) -> Dict[str, Any]:
        """
        Narrative insights and derived columns for a planned combination

        Args:
            members: One entry per file with filename, headers, total_rows and
                sample_data
            base_headers: Unioned headers of the combined dataset
            numeric_headers: Subset of base_headers holding numbers

        Returns:
            JSON payload with suggested_filename, the insight lists,
            new_columns and optimizations. Lists may be missing; the planner
            normalizes them.
        """
        prompt = f"""These spreadsheets will be appended into one dataset (rows stacked, columns unioned by name).

Files:
{json.dumps(members, indent=2, default=str)}

Combined columns: {', '.join(base_headers)}
Numeric columns: {', '.join(numeric_headers) or 'none'}

Propose derived columns that add business value. Each derived column must be
computable row by row with one of these operations over existing combined
columns: {', '.join(DERIVATION_OPS)}. "sum"/"product" take 2+ columns,
"difference"/"ratio" exactly 2, "concat" 2+ columns of any type.

Respond with JSON only:
{{
  "suggested_filename": "descriptive filename without extension",
  "new_columns": [
    {{"name": "column name", "description": "what it represents", "operation": "ratio", "columns": ["A", "B"]}}
  ],
  "optimizations": ["optimization applied or recommended"],
  "data_insights": ["specific insight about the data"],
  "key_discoveries": ["pattern or relationship"],
  "business_opportunities": ["opportunity"],
  "data_quality_insights": ["data quality observation"],
  "analytics_recommendations": ["analysis to run next"]
}}"""

        return self._complete(
            "You are an expert data analyst specializing in combining multiple datasets. "
            "Focus on what the combined data reveals. Respond with ONLY valid JSON.",
            prompt,
            temperature=0.2,
            max_tokens=2000,
        )


# Global instance
_ai_service: Optional[AIService] = None


def get_ai_service() -> AIService:
    """Get or create the global AI service instance"""
    global _ai_service

    if _ai_service is None:
        _ai_service = AIService()

    return _ai_service
