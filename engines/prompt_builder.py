"""Prompt builders for share-of-voice queries and truth audits."""

import json
from typing import Optional

_SOV_TEMPLATE = """\
Answer this question a local person might ask: "{query}"

List the specific local businesses you would recommend, best first.

Return ONLY a JSON object with this exact shape, no other text:
{{"businesses": ["Business Name", "..."], "cited_url": "https://source-you-relied-on or null"}}
"""

_TRUTH_AUDIT_TEMPLATE = """\
You are auditing what AI assistants know about a local business.

First, describe the business below as you would to a customer asking
about it. Then compare your description with the verified ground truth and
list every claim you made that contradicts it.

Business name: {business_name}

Verified ground truth:
{ground_truth}

Return ONLY a JSON object with this exact shape, no other text:
{{"accuracy_score": <integer 0-100>, "hallucinations_detected": [{{"claim_text": "<what you claimed>", "severity": "critical|high|medium|low", "category": "status|hours|amenity|menu|address|phone", "expected_truth": "<what the ground truth says>"}}], "response_text": "<your description>"}}

Severity: critical if the claim would send a customer away (closed, wrong
address or phone), high if it misstates hours or a key amenity, medium for
other factual errors, low for minor wording.
"""


def build_sov_prompt(query_text: str) -> str:
    """Prompt asking an engine which businesses it recommends for a query.

    Args:
        query_text: The tracked query, e.g. "best hookah lounge in Alpharetta GA".

    Returns:
        The formatted prompt.
    """
    return _SOV_TEMPLATE.format(query=query_text.strip())


def build_truth_audit_prompt(
    business_name: str,
    address: Optional[str] = None,
    phone: Optional[str] = None,
    website: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
) -> str:
    """Prompt asking an engine to describe a business and grade itself against ground truth."""
    truth = {
        "name": business_name,
        "address": address,
        "city": city,
        "state": state,
        "phone": phone,
        "website": website,
    }
    ground_truth = json.dumps(
        {key: value for key, value in truth.items() if value},
        indent=2,
    )
    return _TRUTH_AUDIT_TEMPLATE.format(business_name=business_name, ground_truth=ground_truth)
