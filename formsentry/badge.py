"""
FormSentry Badge

Small floating "protected by" pill for pages that host guarded forms.
"""

import html

from formsentry.config import DEFAULT_BADGE_MESSAGE, FormSentryConfig


BADGE_STYLE = (
    "position:fixed;right:12px;bottom:12px;z-index:2147483647;"
    "display:inline-flex;align-items:center;gap:6px;"
    "background:rgba(17,17,17,.72);color:#fff;padding:6px 10px;border-radius:999px;"
    "backdrop-filter:saturate(150%) blur(6px);box-shadow:0 2px 10px rgba(0,0,0,.2);"
    "font:12px/1 system-ui,-apple-system,Segoe UI,Roboto,Arial,Helvetica,sans-serif;"
)

LOCK_ICON = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="14" height="14" viewBox="0 0 24 24" '
    'fill="none" stroke="currentColor" stroke-width="2" stroke-linecap="round" '
    'stroke-linejoin="round" aria-hidden="true">'
    '<rect x="3" y="11" width="18" height="10" rx="2" ry="2"/>'
    '<path d="M7 11V7a5 5 0 0 1 10 0v4"/></svg>'
)


def render_badge(config: FormSentryConfig) -> str:
    """HTML snippet for the badge, or an empty string when it is turned off."""
    if not config.show_badge:
        return ""
    message = config.badge_message.strip() or DEFAULT_BADGE_MESSAGE
    return (
        f'<div class="formsentry-badge" style="{BADGE_STYLE}">'
        f"{LOCK_ICON}<span>{html.escape(message)}</span></div>"
    )
