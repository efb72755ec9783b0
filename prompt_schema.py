# prompt_schema.py

from __future__ import annotations

from typing import Dict, List, Optional

# Sections an admissions reader expects, per document type
EXPECTED_SECTIONS: Dict[str, List[str]] = {
    "SOP": ["introduction/motivation", "academic background", "research experience", "career goals", "program fit"],
    "CV": ["contact info", "education", "experience", "skills", "achievements"],
    "Essay": ["thesis statement", "supporting arguments", "evidence", "conclusion"],
    "LOR": ["relationship context", "specific examples", "skills assessment", "recommendation"],
    "PersonalEssay": ["personal story", "growth/learning", "values/character", "future impact"],
    "ScholarshipEssay": ["financial need", "academic merit", "community impact", "goals"],
}

ANALYSIS_ACTIONS = {
    "realtime_suggestions": {
        "description": "Two or three concise, actionable suggestions for the paragraph being written.",
        "keys": ["suggestions", "context"],
        "model": "realtime",
        "temperature": 0.7,
        "max_tokens": 150,
    },
    "content_gap_detection": {
        "description": "Missing or weak sections compared to what the document type is expected to cover.",
        "keys": ["missingElements", "gapAnalysis", "completionScore"],
        "model": "realtime",
        "temperature": 0.3,
        "max_tokens": 200,
    },
    "tone_consistency": {
        "description": "Professional consistency, voice uniformity and formality level.",
        "keys": ["toneScore", "toneAnalysis", "dominantTone", "inconsistencies"],
        "model": "realtime",
        "temperature": 0.3,
        "max_tokens": 250,
    },
    "redundancy_check": {
        "description": "Redundant phrases and repetitive ideas, with more concise alternatives.",
        "keys": ["redundancyScore", "redundantPhrases", "suggestions", "wordCount"],
        "model": "realtime",
        "temperature": 0.3,
        "max_tokens": 250,
    },
    "full_feedback": {
        "description": "Complete multi-dimensional review of a draft with quoted rewrites.",
        "keys": [
            "summary", "overallScore", "detailedScores", "strengthsIdentified",
            "improvementPoints", "quotedImprovements", "industrySpecificAdvice",
        ],
        "model": "feedback",
        "temperature": 0.7,
        "max_tokens": 4000,
    },
    "improved_draft": {
        "description": "Full rewrite of the document that applies the accumulated feedback.",
        "keys": ["improvedDraft"],
        "model": "feedback",
        "temperature": 0.7,
        "max_tokens": 4000,
    },
}

_PERSONAS = {
    "SOP": "an experienced admissions consultant who gives honest feedback on Statements of Purpose",
    "CV": "a career advisor who helps students present their experience without sounding boastful",
    "Essay": "a writing coach who specializes in compelling application essays",
}

TONE_DIRECTIVES = {
    "conversational": "Write like a knowledgeable friend: warm, direct, speaking to the writer as \"you\".",
    "formal": "Write in a measured, professional register suitable for an academic reviewer.",
    "encouraging": "Lead with what works and frame every issue as a next step.",
}

FEEDBACK_RESPONSE_FORMAT = """RESPONSE FORMAT (JSON only):
{
  "summary": "2-3 paragraphs of feedback, strengths first, then areas to improve",
  "overallScore": <number 1-10>,
  "detailedScores": {"clarity": <1-10>, "authenticity": <1-10>, "structure": <1-10>,
                     "impact": <1-10>, "grammar": <1-10>, "programFit": <1-10>},
  "strengthsIdentified": ["..."],
  "improvementPoints": ["specific, actionable advice"],
  "quotedImprovements": [
    {"originalText": "exact quote from the document", "improvedText": "rewrite", "explanation": "why it works better"}
  ],
  "industrySpecificAdvice": ["..."]
}

CRITICAL REQUIREMENTS:
- Use only exact quotes from the provided document in originalText
- Return ONLY the JSON object with no additional formatting"""


def feedback_system_prompt(document_type: str, tone: str = "conversational", file_name: Optional[str] = None) -> str:
    persona = _PERSONAS.get(document_type, f"a writing coach who reviews {document_type} documents")
    lines = [
        f"You are {persona}.",
        TONE_DIRECTIVES.get(tone, TONE_DIRECTIVES["conversational"]),
        "Assess story and authenticity, clarity and flow, and the connection between past experience and future goals.",
    ]
    if file_name:
        lines.append(f'This content was extracted from the uploaded file "{file_name}". Focus on its actual content.')
    lines.append(FEEDBACK_RESPONSE_FORMAT)
    return "\n\n".join(lines)


def draft_system_prompt(document_type: str) -> str:
    return (
        f"You are a writing coach improving a {document_type} while keeping the writer's authentic voice.\n"
        "Preserve every fact and personal experience. Apply all improvement points and suggested rewrites, "
        "smooth transitions, and keep a similar length and structure.\n"
        "Return ONLY the improved document text, ready for immediate use."
    )


def realtime_system_prompt(action: str, document_type: str) -> str:
    if action == "realtime_suggestions":
        return (f"You are a writing assistant for {document_type} documents. "
                "Give 2-3 concise, actionable suggestions for improvement or continuation, one per line.")
    if action == "content_gap_detection":
        expected = ", ".join(EXPECTED_SECTIONS.get(document_type, [])) or "the usual sections"
        return f"Analyze this {document_type} for missing or weak sections. Expected sections: {expected}"
    if action == "tone_consistency":
        return (f"Analyze the tone consistency in this {document_type}: professional consistency, voice uniformity "
                "and formality. Return JSON only: "
                '{"toneScore": <0-100>, "toneAnalysis": "...", "dominantTone": "...", "inconsistencies": ["..."]}')
    if action == "redundancy_check":
        return ("Identify redundant phrases and repetitive ideas, and suggest more concise alternatives. "
                'Return JSON only: {"redundancyScore": <0-100, 100 = no redundancy>, '
                '"redundantPhrases": ["..."], "suggestions": ["..."]}')
    raise ValueError(f"Unknown realtime action: {action}")


def format_feedback_for_draft(feedback: dict) -> str:
    """Render a feedback bundle as the instructions block for a rewrite."""
    points = "\n".join(f"- {p}" for p in feedback.get("improvementPoints", []))
    quotes = "\n\n".join(
        f'Original: "{q["originalText"]}"\nSuggested improvement: "{q["improvedText"]}"\n'
        f'Why it\'s better: {q.get("explanation", "")}'
        for q in feedback.get("quotedImprovements", [])
    )
    return (
        f"Overall assessment: {feedback.get('summary', '')}\n\n"
        f"Key improvement areas:\n{points}\n\n"
        f"Specific text improvements suggested:\n{quotes}"
    )
