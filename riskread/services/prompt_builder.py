from __future__ import annotations

from enum import Enum


class AnalysisMode(str, Enum):
    QUICK = "quick"
    DETAILED = "detailed"
    EXTRACTION = "extraction"
    QUESTIONS = "questions"


DEFAULT_EXTRACTION_FIELDS = ["title", "date", "author", "summary"]

JSON_ONLY_INSTRUCTION = (
    "IMPORTANT: Respond with valid JSON only. Do not include any other text, "
    "markdown formatting, or explanations."
)

INSIGHT_SHAPE = """{
      "id": 1,
      "text": "Detailed insight description",
      "category": "risk|strength|weakness|opportunity",
      "severity": "high|medium|low",
      "confidence": 0.85
    }"""

RECOMMENDATION_SHAPE = """{
      "id": 1,
      "text": "Detailed recommendation description",
      "priority": "high|medium|low",
      "category": "legal|financial|operational|compliance"
    }"""

FIELD_SHAPE = """{
      "name": "field_name",
      "value": "extracted_value",
      "confidence": 0.9,
      "ambiguity_notes": "optional notes",
      "page_number": 1
    }"""

HIGHLIGHT_SHAPE = """{
      "text": "highlighted text",
      "reason": "Why this text is highlighted",
      "category": "important|risky|unclear",
      "start_position": 0,
      "end_position": 10
    }"""

QUESTION_SHAPE = """{
      "text": "Generated question",
      "priority": "critical|important|optional",
      "category": "clarity|completeness|accuracy|compliance",
      "suggested_action": "What action should be taken"
    }"""

DETAILED_TEMPLATE = """
Analyze the following document content and provide a comprehensive risk assessment.

Document: {file_name}
Content: {document_text}

Confidence values are decimals between 0 and 1.

Please provide your analysis in the following JSON format:
{{
  "insights": [
    {insight}
  ],
  "recommendations": [
    {recommendation}
  ],
  "extracted_fields": [
    {field}
  ],
  "highlights": [
    {highlight}
  ],
  "questions": [
    {question}
  ]
}}
"""

QUICK_TEMPLATE = """
Analyze the following document and provide 5 key insights.

Document: {document_text}

Confidence values are decimals between 0 and 1.

Return exactly this JSON structure:
{{
  "insights": [
    {insight}
  ]
}}
"""

EXTRACTION_TEMPLATE = """
Extract the following fields from the document: {fields}

Document: {document_text}

If a field is ambiguous, explain why in "ambiguity_notes". Confidence values
are decimals between 0 and 1.

Return exactly this JSON structure:
{{
  "extracted_fields": [
    {field}
  ]
}}
"""

QUESTIONS_TEMPLATE = """
Generate clarification questions for unclear, misleading, or incomplete statements in the document.

Document: {document_text}

Return exactly this JSON structure:
{{
  "questions": [
    {question}
  ]
}}
"""


def build_prompt(
        mode: AnalysisMode | str,
        document_text: str,
        file_name: str | None = None,
        fields: list[str] | None = None,
) -> str:
    mode = AnalysisMode(mode)
    if mode is AnalysisMode.DETAILED:
        body = DETAILED_TEMPLATE.format(
            file_name=file_name or "document",
            document_text=document_text,
            insight=INSIGHT_SHAPE,
            recommendation=RECOMMENDATION_SHAPE,
            field=FIELD_SHAPE,
            highlight=HIGHLIGHT_SHAPE,
            question=QUESTION_SHAPE,
        )
    elif mode is AnalysisMode.QUICK:
        body = QUICK_TEMPLATE.format(document_text=document_text, insight=INSIGHT_SHAPE)
    elif mode is AnalysisMode.EXTRACTION:
        body = EXTRACTION_TEMPLATE.format(
            fields=", ".join(fields or DEFAULT_EXTRACTION_FIELDS),
            document_text=document_text,
            field=FIELD_SHAPE,
        )
    else:
        body = QUESTIONS_TEMPLATE.format(document_text=document_text, question=QUESTION_SHAPE)
    return "\n\n".join([body.strip(), JSON_ONLY_INSTRUCTION])
