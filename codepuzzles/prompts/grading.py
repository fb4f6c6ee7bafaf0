"""
Grading prompt templates.
Both modes ask for one JSON judgment validated into ``GradeJudgment``.
"""

GRADING_SYSTEM_PROMPT = "You grade code comprehension answers. Output only valid JSON."

INSUFFICIENT_CONTEXT_PROMPT = """User chose "Insufficient context" for this question: {question}
Grading rubric: {rubric}
The rubric says insufficientContextAllowed: {allowed}.
Was the user's choice valid? Return a single JSON object: {{ "correct": boolean, "explanation": string, "insufficient_context_allowed": boolean }}."""

RANGE_SUBMISSION_PROMPT = """Question: {question}
Expected answer: lines {start_line}-{end_line}.
Grading rubric: {rubric}
User selected (can be multiple ranges): {ranges}.
User explanation: {explanation}
Is the answer correct? Consider whether the user's selected line(s) cover or overlap the expected range; overlap is enough for credit at your discretion, exact equality is not required. Multiple disjoint ranges are allowed if they together answer the question.
Return a single JSON object: {{ "correct": boolean, "explanation": string, "what_you_missed": string | null }}."""


def build_insufficient_context_prompt(question: str, rubric: str, allowed: bool) -> str:
    return INSUFFICIENT_CONTEXT_PROMPT.format(
        question=question,
        rubric=rubric,
        allowed="true" if allowed else "false",
    )


def build_range_submission_prompt(
    question: str,
    start_line: int,
    end_line: int,
    rubric: str,
    ranges: str,
    explanation: str | None,
) -> str:
    return RANGE_SUBMISSION_PROMPT.format(
        question=question,
        start_line=start_line,
        end_line=end_line,
        rubric=rubric,
        ranges=ranges,
        explanation=explanation or "(none)",
    )
