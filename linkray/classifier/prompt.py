"""The fixed classification prompt."""

from __future__ import annotations

from linkray.scanner.models import ExtractedContent

_TEMPLATE = """You are a cybersecurity expert. Analyze this website content.
Title: {title}
Content: {text}

Rules for Risk Score (0-100, where 100 is Safe):
- Phishing, Scams, Malware = 0-20
- Spammy, Low Quality, Unverified Crypto = 30-50
- Legitimate Business, Blogs, News = 80-90
- Verified Tech Platforms (e.g., GitHub, AWS, Google) = 95-100

Return a JSON object with this EXACT structure and nothing else:
{{
  "summary": "A detailed 3-4 sentence paragraph summarizing the website's purpose, key features, and target audience.",
  "risk_score": 50,
  "reason": "Explain why you gave this risk_score, referencing specific content. Be consistent with the score.",
  "category": "Category Name",
  "tags": ["tag1", "tag2", "tag3"]
}}
Use at most 5 tags."""


def build_prompt(content: ExtractedContent) -> str:
    """Embed *content* into the risk-assessment prompt."""
    return _TEMPLATE.format(title=content.title, text=content.text)
