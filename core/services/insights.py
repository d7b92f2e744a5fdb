"""
AI health insights.

Thin proxy to an OpenAI-compatible chat completions endpoint.  The
model is asked to answer in JSON; when it does not, the raw text is
wrapped as a normal-status summary.  One request per call, no retries.
"""
import json
import logging

import requests
from django.conf import settings

from core.exceptions import InvalidInput, UpstreamError, UpstreamQuotaExceeded, UpstreamRateLimited

logger = logging.getLogger(__name__)

VITALS_ANALYSIS = 'vitals_analysis'
ALERT_ANALYSIS = 'alert_analysis'
GENERAL = 'general'
KINDS = (VITALS_ANALYSIS, ALERT_ANALYSIS, GENERAL)

VITALS_PROMPT = """You are ARIA, an AI health monitoring assistant. You analyze patient vital signs \
and provide concise, actionable medical insights.

Your responses should be brief (2-3 sentences max), use medical terminology appropriately, \
highlight any concerning patterns and give a recommendation when needed.

Format your response as JSON with these fields:
{
  "status": "normal" | "attention" | "critical",
  "summary": "Brief one-line status",
  "insights": ["insight 1", "insight 2"],
  "recommendation": "What to do next"
}"""

ALERTS_PROMPT = """You are ARIA, an AI health monitoring assistant. Analyze medical alerts and \
provide a priority assessment and recommended actions.

Format your response as JSON:
{
  "priority": "low" | "medium" | "high" | "critical",
  "summary": "Brief assessment",
  "actions": ["action 1", "action 2"]
}"""

GENERAL_PROMPT = ("You are ARIA, an AI health assistant in a medical monitoring system. You help "
                  "healthcare professionals and patients understand health data. Be concise, "
                  "helpful and professional.")


def build_prompts(kind: str, vitals=None, alerts=None) -> tuple[str, str]:
    if kind == VITALS_ANALYSIS:
        return VITALS_PROMPT, 'Analyze these vital signs and provide health insights:\n' + json.dumps(vitals, indent=2)
    if kind == ALERT_ANALYSIS:
        return ALERTS_PROMPT, 'Analyze these alerts and prioritize:\n' + json.dumps(alerts, indent=2)
    if kind == GENERAL:
        text = vitals or alerts or 'Provide a general health tip.'
        if not isinstance(text, str):
            text = json.dumps(text, indent=2)
        return GENERAL_PROMPT, text
    raise InvalidInput(f'unknown insight type: {kind}')


def parse_content(content) -> dict:
    try:
        result = json.loads(content)
    except (TypeError, ValueError):
        return {'summary': content, 'status': 'normal'}
    if not isinstance(result, dict):
        return {'summary': content, 'status': 'normal'}
    return result


def request_insight(kind: str, *, vitals=None, alerts=None) -> dict:
    if not settings.INSIGHTS_API_KEY:
        raise UpstreamError('insights service is not configured')
    system_prompt, user_prompt = build_prompts(kind, vitals, alerts)
    body = {
        'model': settings.INSIGHTS_MODEL,
        'messages': [
            {'role': 'system', 'content': system_prompt},
            {'role': 'user', 'content': user_prompt},
        ],
        'stream': False,
    }
    headers = {'Authorization': f'Bearer {settings.INSIGHTS_API_KEY}'}
    try:
        r = requests.post(settings.INSIGHTS_URL, json=body, headers=headers, timeout=settings.INSIGHTS_TIMEOUT)
    except requests.RequestException as e:
        logger.warning('insights request failed: %s', e)
        raise UpstreamError('insights service unavailable') from e

    if r.status_code == 429:
        raise UpstreamRateLimited('Rate limit exceeded. Please try again later.')
    if r.status_code == 402:
        raise UpstreamQuotaExceeded('AI credits depleted.')
    if not r.ok:
        logger.error('insights gateway error %s: %s', r.status_code, r.text[:500])
        raise UpstreamError('insights gateway error')

    try:
        content = r.json()['choices'][0]['message']['content']
    except (ValueError, KeyError, IndexError, TypeError) as e:
        logger.error('insights gateway returned an unexpected body: %s', r.text[:500])
        raise UpstreamError('insights gateway returned an unexpected response') from e
    return parse_content(content)
