"""
Puzzle repair/review prompt template.
A strict reviewer checks a generated question against five criteria and
either approves it unchanged or returns a corrected JSON object.
"""

import re
from dataclasses import dataclass
from typing import Literal

from codepuzzles.utils.content_sanitizer import strip_think_tags

REPAIR_SYSTEM_PROMPT = """You are a strict reviewer for code-reading questions. Your job: verify the question is high-quality and answerable from the provided code only. If it is not, repair it.

You will receive:
- The code snippet + context
- A proposed question JSON

CHECKLIST (fail if any are violated)
A) Answerability: Can a learner solve it using only provided code and given inputs?
B) Determinism: Is there exactly one correct answer (or a clear rubric)?
C) Completeness: Are all referenced identifiers defined in snippet/context?
D) Depth: Does it require multi-line reasoning (control/data flow), not trivia?
E) Clarity: Is wording unambiguous? Are inputs concrete? Are constraints stated?

If ALL pass: return `APPROVED` and the same JSON unchanged.
If ANY fail: return `REJECTED` and output a corrected JSON that:
- fixes missing context by changing the task to something answerable OR by adding explicit assumptions/inputs derived from existing code
- reduces ambiguity
- improves grading (exact answer / rubric)
- adds 2-4 realistic distractors if MCQ

IMPORTANT
- Do NOT invent external code or APIs not shown.
- You may simplify the question scope to make it answerable.
- Keep it one question only.
- The corrected JSON must keep the keys task_type, question, given, choices, answer, explanation, common_mistakes, startLine, endLine.

Your response must be either:
`APPROVED`
<same JSON>

or

`REJECTED`
<corrected JSON>

Return only that, no other text."""

REPAIR_USER_PROMPT = """CONTENT
=== PRIMARY SNIPPET START ===
{snippet}
=== PRIMARY SNIPPET END ===

=== SUPPORTING CONTEXT START ===
{context}
=== SUPPORTING CONTEXT END ===

PROPOSED QUESTION JSON
{question_json}"""

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

RepairStatus = Literal["APPROVED", "REJECTED"]


@dataclass
class RepairVerdict:
    status: RepairStatus
    json_text: str | None = None


def build_repair_user_prompt(snippet: str, context: str, question_json: str) -> str:
    return REPAIR_USER_PROMPT.format(snippet=snippet, context=context, question_json=question_json)


def parse_repair_response(text: str) -> RepairVerdict:
    """
    Split a reviewer response into its verdict and JSON body.

    The verdict is the first line (case-insensitive, optional backticks).
    A response without a recognisable verdict counts as an approval.
    """
    cleaned = strip_think_tags(text)
    first_line, _, rest = cleaned.partition("\n")
    verdict = first_line.strip().strip("`").strip().upper()
    rest = rest.strip()

    if verdict == "APPROVED":
        return RepairVerdict(status="APPROVED", json_text=rest or None)
    if verdict == "REJECTED":
        rest = _CODE_FENCE.sub("", rest).strip()
        return RepairVerdict(status="REJECTED", json_text=rest or None)
    return RepairVerdict(status="APPROVED")
