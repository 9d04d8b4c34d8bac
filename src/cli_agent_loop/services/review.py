"""Reviewer verdict parsing for the review/fix sub-loop."""

import json
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict

from cli_agent_loop.providers.parsing import is_record, safe_json_parse

ReviewVerdict = Literal["pass", "drift"]


class ReviewResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    verdict: ReviewVerdict
    follow_up_prompt: str


class ReviewFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: str
    raw: str


def parse_reviewer_verdict(raw: str) -> Union[ReviewResult, ReviewFailure]:
    """Parse strict reviewer JSON output.

    Expected shape: {"verdict": "pass" | "drift", "followUpPrompt": "..."}

    The reviewer may print preamble text, so the span from the first '{' to the
    last '}' is parsed. Any missing or malformed field is a failure; the reviewer
    contract is strict.
    """
    trimmed = raw.strip()
    if not trimmed:
        return ReviewFailure(reason="empty reviewer output", raw=trimmed)

    start = trimmed.find("{")
    end = trimmed.rfind("}")
    if start == -1 or end <= start:
        return ReviewFailure(reason="no JSON object found in reviewer output", raw=trimmed)

    candidate = trimmed[start : end + 1]
    parsed = safe_json_parse(candidate)
    if not is_record(parsed):
        return ReviewFailure(reason="reviewer output is not a valid JSON object", raw=candidate)

    verdict = parsed.get("verdict")
    if verdict not in ("pass", "drift"):
        return ReviewFailure(
            reason=f'invalid verdict: expected "pass" or "drift", got {json.dumps(verdict)}',
            raw=candidate,
        )

    follow_up = parsed.get("followUpPrompt")
    if not isinstance(follow_up, str):
        return ReviewFailure(
            reason=(
                "missing or invalid followUpPrompt: expected string, "
                f"got {type(follow_up).__name__}"
            ),
            raw=candidate,
        )

    return ReviewResult(verdict=verdict, follow_up_prompt=follow_up)


def is_review_result(value: Union[ReviewResult, ReviewFailure]) -> bool:
    return isinstance(value, ReviewResult)


def is_review_failure(value: Union[ReviewResult, ReviewFailure]) -> bool:
    return isinstance(value, ReviewFailure)
