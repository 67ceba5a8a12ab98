import html as html_lib
import logging
import re
from typing import Callable
from urllib.parse import parse_qs, urlsplit

from scene.models.enrichment import DetectionResult

logger = logging.getLogger(__name__)

MatchResult = tuple[int, str | None, dict[str, str]]
Matcher = Callable[[str], MatchResult]

MATCHERS: dict[str, Matcher] = {}

KLAVIYO_SUBSCRIBE_ENDPOINT = "https://a.klaviyo.com/api/v2/list/subscribe"
SQUARESPACE_FORM_SUBMIT_PATH = "/api/form/FormSubmit"

_FORM_RE = re.compile(r"<form[^>]*>.*?</form>", re.I | re.S)
_HIDDEN_INPUT_RE = re.compile(r"<input[^>]+type=[\"']hidden[\"'][^>]*>", re.I)
_NAME_ATTR_RE = re.compile(r"name=[\"']([^\"']+)[\"']")
_VALUE_ATTR_RE = re.compile(r"value=[\"']([^\"']*?)[\"']")


def matcher(name: str) -> Callable[[Matcher], Matcher]:
    """Register a detection function under a provider name."""

    def register(fn: Matcher) -> Matcher:
        MATCHERS[name] = fn
        return fn

    return register


def _attr_url(attr: str, domain_pattern: str) -> re.Pattern[str]:
    return re.compile(
        rf"{attr}=[\"'](https?://[^\"']*{domain_pattern}[^\"']*)[\"']",
        re.I,
    )


def _query_param(url: str, param: str) -> str | None:
    try:
        values = parse_qs(urlsplit(html_lib.unescape(url)).query).get(param)
    except ValueError:
        return None
    return values[0] if values else None


def _hidden_inputs(form_html: str) -> dict[str, str]:
    params: dict[str, str] = {}
    for tag in _HIDDEN_INPUT_RE.findall(form_html):
        name = _NAME_ATTR_RE.search(tag)
        if name:
            value = _VALUE_ATTR_RE.search(tag)
            params[name.group(1)] = value.group(1) if value else ""
    return params


def _first_form_containing(html: str, pattern: re.Pattern[str]) -> str | None:
    for form in _FORM_RE.finditer(html):
        if pattern.search(form.group(0)):
            return form.group(0)
    return None


_MC_ACTION_RE = _attr_url("action", r"list-manage\.com/subscribe/post")
_MC_SCRIPT_RE = re.compile(r"src=[\"'](https?://mc\.us\d+\.list-manage\.com[^\"']*)[\"']", re.I)
_MC_SERVER_RE = re.compile(r"mc\.(us\d+)\.list-manage\.com", re.I)
_MC_DOMAIN_RE = re.compile(r"list-manage\.com", re.I)


@matcher("mailchimp")
def _match_mailchimp(html: str) -> MatchResult:
    confidence = 0
    endpoint = None
    params: dict[str, str] = {}

    action = _MC_ACTION_RE.search(html)
    if action:
        confidence += 50
        endpoint = action.group(1)
        for key in ("u", "id"):
            value = _query_param(endpoint, key)
            if value:
                params[key] = value
        form = _first_form_containing(html, _MC_DOMAIN_RE)
        if form:
            params.update(_hidden_inputs(form))

    script = _MC_SCRIPT_RE.search(html)
    if script:
        confidence += 30
        if endpoint is None:
            server = _MC_SERVER_RE.search(script.group(1))
            if server:
                params["server"] = server.group(1)

    return confidence, endpoint, params


_KL_ACTION_RE = _attr_url("action", r"klaviyo\.com")
_KL_SCRIPT_RE = re.compile(r"src=[\"'][^\"']*static\.klaviyo\.com[^\"']*[\"']", re.I)
_KL_FORMS_RE = re.compile(r"klaviyoForms", re.I)
_KL_COMPANY_RE = re.compile(r"klaviyo\.com/media/js/onsite/onsite\.js\?company_id=([^\"'&\s]+)", re.I)
_KL_LIST_RE = re.compile(r"data-klaviyo-list-id=[\"']([^\"']+)[\"']", re.I)


@matcher("klaviyo")
def _match_klaviyo(html: str) -> MatchResult:
    confidence = 0
    endpoint = None
    params: dict[str, str] = {}

    action = _KL_ACTION_RE.search(html)
    if action:
        confidence += 50
        endpoint = action.group(1)
    if _KL_SCRIPT_RE.search(html):
        confidence += 30
    if _KL_FORMS_RE.search(html):
        confidence += 20

    company = _KL_COMPANY_RE.search(html)
    if company:
        params["company_id"] = company.group(1)
        confidence += 10
        if endpoint is None:
            endpoint = KLAVIYO_SUBSCRIBE_ENDPOINT

    list_id = _KL_LIST_RE.search(html)
    if list_id:
        params["list_id"] = list_id.group(1)

    return confidence, endpoint, params


def _weighted_signals(html: str, signals: list[tuple[re.Pattern[str], int]]) -> tuple[int, str | None]:
    """
    Sum the weight of every signal present; the endpoint is the URL captured
    by the first signal (in list order) that matched.
    """
    confidence = 0
    endpoint = None
    for pattern, weight in signals:
        found = pattern.search(html)
        if found:
            confidence += weight
            if endpoint is None:
                endpoint = found.group(1)
    return confidence, endpoint


_CC_SIGNALS = [
    (_attr_url("action", r"constantcontact\.com"), 50),
    (_attr_url("src", r"constantcontact\.com"), 30),
    (_attr_url("href", r"constantcontact\.com"), 10),
]


@matcher("constant_contact")
def _match_constant_contact(html: str) -> MatchResult:
    confidence, endpoint = _weighted_signals(html, _CC_SIGNALS)
    return confidence, endpoint, {}


# "ml.com" only counts as a whole host label, never the tail of e.g. "html.com"
_ML_DOMAINS = r"(?:mailerlite\.com|(?<![\w-])ml\.com)"
_ML_ACTION_RE = _attr_url("action", _ML_DOMAINS)
_ML_SCRIPT_RE = re.compile(rf"src=[\"'][^\"']*{_ML_DOMAINS}[^\"']*[\"']", re.I)
_ML_ACCOUNT_RE = re.compile(r"ml\(\s*['\"]account['\"]\s*,\s*['\"](\w+)['\"]\s*\)", re.I)
_ML_GROUP_RE = re.compile(r"data-ml-group=[\"']([^\"']+)[\"']", re.I)


@matcher("mailerlite")
def _match_mailerlite(html: str) -> MatchResult:
    confidence = 0
    endpoint = None
    params: dict[str, str] = {}

    action = _ML_ACTION_RE.search(html)
    if action:
        confidence += 50
        endpoint = action.group(1)
    if _ML_SCRIPT_RE.search(html):
        confidence += 30

    account = _ML_ACCOUNT_RE.search(html)
    if account:
        params["account_id"] = account.group(1)
        confidence += 20

    group = _ML_GROUP_RE.search(html)
    if group:
        params["group_id"] = group.group(1)

    return confidence, endpoint, params


_BH_SIGNALS = [
    (_attr_url("action", r"beehiiv\.com"), 50),
    (_attr_url("(?:src|data-src)", r"beehiiv\.com"), 40),
    (_attr_url("href", r"beehiiv\.com"), 20),
]
_BH_PUBLICATION_RE = re.compile(r"beehiiv\.com/v1/([^/\"'?\s]+)")


@matcher("beehiiv")
def _match_beehiiv(html: str) -> MatchResult:
    confidence, endpoint = _weighted_signals(html, _BH_SIGNALS)
    params: dict[str, str] = {}
    publication = _BH_PUBLICATION_RE.search(endpoint or "")
    if publication:
        params["publication_id"] = publication.group(1)
    return confidence, endpoint, params


_SQ_FORM_CLASS_RE = re.compile(r"class=[\"'][^\"']*newsletter-form[^\"']*[\"']", re.I)
_SQ_FORM_ID_RE = re.compile(r"data-form-id=[\"']([^\"']+)[\"']", re.I)
_SQ_WORD_RE = re.compile(r"squarespace", re.I)
_SQ_COLLECTION_RE = re.compile(r"collectionId[\"'\s:=]+[\"']([^\"']+)[\"']", re.I)
_SQ_CANONICAL_RE = re.compile(
    r"<link[^>]+rel=[\"']canonical[\"'][^>]+href=[\"'](https?://[^\"'/]+)", re.I
)
_SQ_OG_URL_RE = re.compile(
    r"<meta[^>]+property=[\"']og:url[\"'][^>]+content=[\"'](https?://[^\"'/]+)", re.I
)


def _own_origin(html: str) -> str | None:
    for pattern in (_SQ_CANONICAL_RE, _SQ_OG_URL_RE):
        found = pattern.search(html)
        if found:
            return found.group(1)
    return None


@matcher("squarespace")
def _match_squarespace(html: str) -> MatchResult:
    """
    Squarespace forms post back to the site itself, so there is no provider
    domain to find. The endpoint is built from the page's canonical origin.
    """
    confidence = 0
    endpoint = None
    params: dict[str, str] = {}

    if _SQ_FORM_CLASS_RE.search(html):
        confidence += 40

    form_id = _SQ_FORM_ID_RE.search(html)
    if form_id:
        params["formId"] = form_id.group(1)
        confidence += 40 if _SQ_WORD_RE.search(html) else 10

    collection = _SQ_COLLECTION_RE.search(html)
    if collection:
        params["collectionId"] = collection.group(1)
        confidence += 10

    if confidence > 0 and "formId" in params:
        origin = _own_origin(html)
        if origin:
            endpoint = f"{origin}{SQUARESPACE_FORM_SUBMIT_PATH}"

    return confidence, endpoint, params


_SS_SIGNALS = [
    (_attr_url("src", r"substack\.com"), 30),
    (_attr_url("href", r"\.substack\.com"), 40),
]
_SS_SUBDOMAIN_RE = re.compile(r"https?://([^./]+)\.substack\.com", re.I)


@matcher("substack")
def _match_substack(html: str) -> MatchResult:
    confidence, endpoint = _weighted_signals(html, _SS_SIGNALS)
    params: dict[str, str] = {}
    subdomain = _SS_SUBDOMAIN_RE.search(endpoint or "")
    if subdomain:
        params["subdomain"] = subdomain.group(1)
        endpoint = f"https://{subdomain.group(1)}.substack.com/api/v1/free"
    return confidence, endpoint, params


def detect_provider(html: str | None) -> DetectionResult:
    """
    Run every registered matcher and return the strictly highest-confidence
    result. Ties keep the earlier-registered provider. Never raises.
    """
    best = DetectionResult()
    if not html:
        return best

    for name, detect in MATCHERS.items():
        try:
            confidence, endpoint, params = detect(html)
        except Exception:
            logger.exception("[providers] matcher crashed | provider=%s", name)
            continue
        if confidence > best.confidence:
            best = DetectionResult(
                provider=name,
                direct_endpoint=endpoint,
                confidence=confidence,
                extracted_params=params,
            )

    if best.provider:
        logger.debug(
            "[providers] detected | provider=%s | confidence=%d | endpoint=%s",
            best.provider,
            best.confidence,
            best.direct_endpoint,
        )
    return best
