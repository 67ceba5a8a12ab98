import logging
import re

from scene.models.enrichment import CandidateSource, NewsletterCandidate

logger = logging.getLogger(__name__)

NEWSLETTER_KEYWORDS_RE = re.compile(
    r"newsletter|subscribe|signup|sign-up|mailing.?list|email.?list|stay.?in.?touch|join.?our",
    re.I,
)

PROVIDER_DOMAINS = (
    "list-manage.com",
    "klaviyo.com",
    "constantcontact.com",
    "mailerlite.com",
    "ml.com",
    "beehiiv.com",
    "substack.com",
    "squarespace.com",
)

ACTIONLESS_FORM_URL = "#actionless-email-form"
FOOTER_THRESHOLD = 0.7
FOOTER_BONUS = 15

# A provider domain must start a host label: "ml.com" matches, "html.com" does not
_PROVIDER_DOMAIN_RE = re.compile(
    r"(?<![\w-])(?:" + "|".join(re.escape(d) for d in PROVIDER_DOMAINS) + r")",
    re.I,
)

_FORM_WITH_ACTION_RE = re.compile(r"<form[^>]*action=[\"']([^\"']+)[\"'][^>]*>.*?</form>", re.I | re.S)
_FORM_WITHOUT_ACTION_RE = re.compile(r"<form(?![^>]*action=)[^>]*>.*?</form>", re.I | re.S)
_EMAIL_INPUT_RE = re.compile(r"type=[\"']email[\"']|name=[\"']email[\"']", re.I)
_SQUARESPACE_FORM_RE = re.compile(r"class=[\"'][^\"']*newsletter-form|data-form-id", re.I)
_LINK_RE = re.compile(r"<a\s[^>]*href=[\"']([^\"']+)[\"'][^>]*>(.*?)</a>", re.I | re.S)
_EMBED_RE = re.compile(r"<(?:iframe|embed)\s[^>]*src=[\"']([^\"']+)[\"'][^>]*>", re.I)
_SCRIPT_SRC_RE = re.compile(r"<script\s[^>]*src=[\"']([^\"']+)[\"'][^>]*>", re.I)
_INLINE_SCRIPT_RE = re.compile(r"<script(\s[^>]*)?>(.*?)</script>", re.I | re.S)
_SRC_ATTR_RE = re.compile(r"\bsrc=", re.I)


def _has_provider_domain(text: str) -> bool:
    return _PROVIDER_DOMAIN_RE.search(text) is not None


class _SurfaceScan:
    """Collects candidates for one surface, keeping the best-scoring hit per key (the URL by default)."""

    def __init__(self, html_length: int, source: CandidateSource) -> None:
        self._html_length = html_length
        self._source = source
        self._slots: dict[object, int] = {}
        self.candidates: list[NewsletterCandidate] = []

    def add(
        self,
        url: str,
        score: int,
        position: int,
        form_html: str | None = None,
        key: object = None,
    ) -> None:
        key = url if key is None else key
        candidate = NewsletterCandidate(
            url=url,
            score=score,
            source=self._source,
            position_ratio=position / self._html_length,
            form_html=form_html,
        )
        slot = self._slots.get(key)
        if slot is None:
            self._slots[key] = len(self.candidates)
            self.candidates.append(candidate)
        elif score > self.candidates[slot].score:
            self.candidates[slot] = candidate


def _scan_forms_with_action(html: str) -> list[NewsletterCandidate]:
    scan = _SurfaceScan(len(html), "form_action")
    for match in _FORM_WITH_ACTION_RE.finditer(html):
        url, form_html = match.group(1), match.group(0)
        score = 0
        if _has_provider_domain(url):
            score += 30
        if NEWSLETTER_KEYWORDS_RE.search(form_html):
            score += 20
        if _EMAIL_INPUT_RE.search(form_html):
            score += 10
        if score > 0:
            scan.add(url, score, match.start(), form_html)
    return scan.candidates


def _scan_actionless_forms(html: str) -> list[NewsletterCandidate]:
    """JS-submitted forms (Squarespace and friends) carry no action attribute."""
    scan = _SurfaceScan(len(html), "form_action")
    for match in _FORM_WITHOUT_ACTION_RE.finditer(html):
        form_html = match.group(0)
        if not _EMAIL_INPUT_RE.search(form_html):
            continue
        score = 10
        if NEWSLETTER_KEYWORDS_RE.search(form_html):
            score += 20
        if _SQUARESPACE_FORM_RE.search(form_html):
            score += 25
        # every actionless form shares the placeholder URL, so each match is its own candidate
        scan.add(ACTIONLESS_FORM_URL, score, match.start(), form_html, key=match.start())
    return scan.candidates


def _scan_links(html: str) -> list[NewsletterCandidate]:
    scan = _SurfaceScan(len(html), "link")
    for match in _LINK_RE.finditer(html):
        url, link_text = match.group(1), match.group(2)
        score = 0
        if _has_provider_domain(url):
            score += 25
        if NEWSLETTER_KEYWORDS_RE.search(link_text) or NEWSLETTER_KEYWORDS_RE.search(url):
            score += 15
        if score > 0:
            scan.add(url, score, match.start())
    return scan.candidates


def _scan_provider_urls(html: str, pattern: re.Pattern[str], source: CandidateSource) -> list[NewsletterCandidate]:
    scan = _SurfaceScan(len(html), source)
    for match in pattern.finditer(html):
        url = match.group(1)
        if _has_provider_domain(url):
            scan.add(url, 25, match.start())
    return scan.candidates


def _scan_inline_scripts(html: str) -> list[NewsletterCandidate]:
    scan = _SurfaceScan(len(html), "inline_script")
    for match in _INLINE_SCRIPT_RE.finditer(html):
        attrs, body = match.group(1) or "", match.group(2)
        if _SRC_ATTR_RE.search(attrs):
            continue
        domain = _PROVIDER_DOMAIN_RE.search(body)
        if domain is None:
            continue
        full_url = re.search(rf"(https?://[^\"'\s]*{re.escape(domain.group(0))}[^\"'\s]*)", body, re.I)
        scan.add(full_url.group(1) if full_url else domain.group(0), 25, match.start())
    return scan.candidates


def extract_candidates(html: str | None) -> list[NewsletterCandidate]:
    """
    Return newsletter-like forms and links found in ``html``, best first.
    Equal scores keep their scan order.
    """
    if not html:
        return []

    candidates = [
        *_scan_forms_with_action(html),
        *_scan_actionless_forms(html),
        *_scan_links(html),
        *_scan_provider_urls(html, _EMBED_RE, "embed"),
        *_scan_provider_urls(html, _SCRIPT_SRC_RE, "script_tag"),
        *_scan_inline_scripts(html),
    ]
    for candidate in candidates:
        if candidate.position_ratio >= FOOTER_THRESHOLD:
            candidate.score += FOOTER_BONUS

    ranked = sorted(candidates, key=lambda c: c.score, reverse=True)
    logger.debug("[candidates] extracted | count=%d", len(ranked))
    return ranked
