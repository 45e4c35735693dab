"""
Weekly digest email rendering

Inline-styled HTML for email clients. Every interpolated value is escaped.
"""
from dataclasses import dataclass, field
from html import escape
from typing import List, Optional

from app.services.insight_types import SEVERITY_SUCCESS, SEVERITY_WARN, SEVERITY_ERROR

TONE_GOOD = "good"
TONE_WARN = "warn"
TONE_INFO = "info"

TONE_COLORS = {
    TONE_GOOD: '#22C3A6',
    TONE_WARN: '#F59E0B',
    TONE_INFO: '#38BDF8',
}

BRAND_NAME = "LocalPulse"
PREVIEW_TEXT = "Your LocalPulse weekly insights are ready."


@dataclass
class SummaryItem:
    label: str
    value: str
    tone: str = TONE_INFO
    href: Optional[str] = None


@dataclass
class DigestEmailContext:
    cafe_name: str
    week_of: str
    summary_items: List[SummaryItem] = field(default_factory=list)
    focus_line: str = "Review your latest insights this week."
    focus_reason: str = "See what changed in the last 7 days."
    focus_link: Optional[str] = None
    cta_url: str = ""
    unsubscribe_url: Optional[str] = None


def severity_tone(severity: str) -> str:
    if severity == SEVERITY_SUCCESS:
        return TONE_GOOD
    if severity in (SEVERITY_WARN, SEVERITY_ERROR):
        return TONE_WARN
    return TONE_INFO


def digest_subject(week_of: str) -> str:
    return f"Weekly Digest - {week_of}"


def _summary_row(item: SummaryItem) -> str:
    color = TONE_COLORS.get(item.tone, TONE_COLORS[TONE_INFO])
    text = (
        f'<p style="font-size:12px;color:#94A3B8;margin:0 0 2px;">{escape(item.label)}</p>'
        f'<p style="font-size:15px;color:#0B1220;margin:0;font-weight:600;">{escape(item.value)}</p>'
    )
    if item.href:
        text = f'<a href="{escape(item.href, quote=True)}" style="text-decoration:none;color:inherit;display:block;">{text}</a>'
    return f"""
        <tr>
            <td style="width:20px;vertical-align:top;padding-bottom:12px;">
                <span style="display:inline-block;width:10px;height:10px;border-radius:999px;background-color:{color};"></span>
            </td>
            <td style="padding-bottom:12px;">{text}</td>
        </tr>"""


def render_weekly_digest(ctx: DigestEmailContext) -> str:
    """Render the full digest HTML document"""
    rows = "".join(_summary_row(item) for item in ctx.summary_items)
    focus_href = escape(ctx.focus_link or ctx.cta_url, quote=True)
    cta_href = escape(ctx.cta_url, quote=True)

    html = f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>{escape(digest_subject(ctx.week_of))}</title>
</head>
<body style="background-color:#F6F9FA;font-family:'Inter','Helvetica Neue',Arial,sans-serif;margin:0;padding:24px 12px;">
    <div style="display:none;max-height:0;overflow:hidden;">{escape(PREVIEW_TEXT)}</div>
    <div style="max-width:640px;margin:0 auto;">
        <div style="padding:24px 24px 16px;background-color:#0B1220;color:#FFFFFF;border-radius:16px;">
            <table width="100%"><tr>
                <td style="font-size:18px;font-weight:700;letter-spacing:0.5px;">{BRAND_NAME}</td>
                <td align="right" style="color:#94A3B8;font-size:12px;">{escape(ctx.week_of)}</td>
            </tr></table>
            <h1 style="font-size:28px;line-height:1.2;margin:16px 0 8px;">Weekly Digest</h1>
            <p style="color:#D6DEE8;font-size:14px;margin:0;">A quick pulse on what matters this week.</p>
        </div>

        <div style="margin-top:16px;background-color:#FFFFFF;border-radius:16px;padding:20px;border:1px solid #E5EDF2;">
            <p style="text-transform:uppercase;letter-spacing:0.12em;font-size:11px;color:#94A3B8;margin:0 0 6px;">This week at</p>
            <h2 style="font-size:22px;margin:0 0 16px;color:#0B1220;">{escape(ctx.cafe_name)}</h2>
            <table width="100%" cellpadding="0" cellspacing="0">{rows}
            </table>
        </div>

        <div style="margin-top:16px;background-color:#FFFFFF;border-radius:16px;padding:20px;border:1px solid #E5EDF2;">
            <p style="text-transform:uppercase;letter-spacing:0.12em;font-size:11px;color:#94A3B8;margin:0 0 6px;">Suggested focus</p>
            <p style="font-size:15px;color:#0B1220;margin:0 0 16px;">{escape(ctx.focus_line)}</p>
            <p style="font-size:12px;color:#94A3B8;margin:0 0 16px;">{escape(ctx.focus_reason)}</p>
            <a href="{focus_href}" style="background-color:#22C3A6;color:#0B1220;font-size:14px;font-weight:600;border-radius:999px;padding:12px 22px;text-decoration:none;display:inline-block;">View focus insight</a>
            <a href="{cta_href}" style="background-color:#FFFFFF;color:#0B1220;font-size:13px;font-weight:600;border-radius:999px;padding:10px 20px;text-decoration:none;display:inline-block;border:1px solid #E2E8F0;margin-left:10px;">Open this week's insights</a>
        </div>

        <hr style="border-color:#E5EDF2;margin:24px 0 8px;">
        <div style="padding:0 8px 16px;">
            <p style="font-size:11px;color:#94A3B8;margin:0 0 6px;">You are receiving this email because you have a {BRAND_NAME} account.</p>
"""

    if ctx.unsubscribe_url:
        html += f'            <a href="{escape(ctx.unsubscribe_url, quote=True)}" style="font-size:11px;color:#64748B;">Unsubscribe</a>\n'

    html += """        </div>
    </div>
</body>
</html>
"""
    return html
