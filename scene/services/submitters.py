import logging
from typing import Awaitable, Callable

from scene.models.subscription import SubmitResult
from scene.services.http_client import FetchResult, HttpFetcher

logger = logging.getLogger(__name__)

EVIDENCE_BODY_LIMIT = 500

# Name of the single email field for providers posted via the generic submitter
PROVIDER_EMAIL_FIELDS = {
    "constant_contact": "email",
    "mailerlite": "fields[email]",
    "beehiiv": "email",
    "substack": "email",
    "squarespace": "email",
}
DEFAULT_EMAIL_FIELD = "email"

Submitter = Callable[[HttpFetcher, str, dict[str, str], str], Awaitable[SubmitResult]]


def _to_result(label: str, endpoint: str, response: FetchResult) -> SubmitResult:
    if response.error is not None:
        return SubmitResult(success=False, evidence=f"{label} POST failed: {response.error}")

    snippet = response.text[:EVIDENCE_BODY_LIMIT]
    if response.accepted:
        return SubmitResult(success=True, evidence=f"{label} POST {response.status_code} to {endpoint} - {snippet}")
    return SubmitResult(success=False, evidence=f"{label} POST returned {response.status_code} - {snippet}")


async def submit_mailchimp(
    fetcher: HttpFetcher, endpoint: str, params: dict[str, str], email: str
) -> SubmitResult:
    """Form-encoded POST to list-manage.com with EMAIL plus every extracted param (u, id, hidden inputs)."""
    response = await fetcher.post_form(endpoint, {"EMAIL": email, **params})
    return _to_result("Mailchimp", endpoint, response)


async def submit_klaviyo(
    fetcher: HttpFetcher, endpoint: str, params: dict[str, str], email: str
) -> SubmitResult:
    """JSON POST; the list and company fields are only sent when they were extracted."""
    payload: dict[str, str] = {"email": email}
    if params.get("list_id"):
        payload["g"] = params["list_id"]
    if params.get("company_id"):
        payload["$company_id"] = params["company_id"]
    response = await fetcher.post_json(endpoint, payload)
    return _to_result("Klaviyo", endpoint, response)


async def submit_generic(
    fetcher: HttpFetcher,
    endpoint: str,
    email: str,
    email_field: str = DEFAULT_EMAIL_FIELD,
    label: str = "Provider",
) -> SubmitResult:
    response = await fetcher.post_form(endpoint, {email_field: email})
    return _to_result(label, endpoint, response)


async def submit_squarespace(
    fetcher: HttpFetcher, endpoint: str, params: dict[str, str], email: str
) -> SubmitResult:
    return await submit_generic(
        fetcher, endpoint, email, PROVIDER_EMAIL_FIELDS["squarespace"], label="Squarespace"
    )


SUBMITTERS: dict[str, Submitter] = {
    "mailchimp": submit_mailchimp,
    "klaviyo": submit_klaviyo,
    "squarespace": submit_squarespace,
}


async def submit_for_provider(
    fetcher: HttpFetcher, provider: str, endpoint: str, params: dict[str, str], email: str
) -> SubmitResult:
    """Dispatch to the provider's submitter; anything unregistered goes through submit_generic."""
    submitter = SUBMITTERS.get(provider)
    if submitter is not None:
        result = await submitter(fetcher, endpoint, params, email)
    else:
        email_field = PROVIDER_EMAIL_FIELDS.get(provider, DEFAULT_EMAIL_FIELD)
        result = await submit_generic(fetcher, endpoint, email, email_field)
    logger.info(
        "[submit] %s | provider=%s | endpoint=%s",
        "accepted" if result.success else "rejected",
        provider,
        endpoint,
    )
    return result
