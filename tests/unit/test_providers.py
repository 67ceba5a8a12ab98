import pytest

from scene.services.providers import KLAVIYO_SUBSCRIBE_ENDPOINT, MATCHERS, detect_provider

MAILCHIMP_ACTION = "https://site.us1.list-manage.com/subscribe/post?u=AAA&id=BBB"

MAILCHIMP_FORM = (
    f'<form action="{MAILCHIMP_ACTION}" method="post" id="mc-embedded-subscribe-form">'
    '<input type="email" name="EMAIL">'
    '<input type="hidden" name="MMERGE1" value="x">'
    "</form>"
)


def test_registry_order():
    assert list(MATCHERS) == [
        "mailchimp",
        "klaviyo",
        "constant_contact",
        "mailerlite",
        "beehiiv",
        "squarespace",
        "substack",
    ]


@pytest.mark.parametrize("html", ["", None, "<html><body><p>Tacos</p></body></html>"])
def test_no_provider(html):
    result = detect_provider(html)
    assert result.provider is None
    assert result.direct_endpoint is None
    assert result.confidence == 0
    assert result.extracted_params == {}


def test_mailchimp_form_action_with_hidden_inputs():
    result = detect_provider(f"<html><body>{MAILCHIMP_FORM}</body></html>")
    assert result.provider == "mailchimp"
    assert result.direct_endpoint == MAILCHIMP_ACTION
    assert result.extracted_params == {"u": "AAA", "id": "BBB", "MMERGE1": "x"}
    assert result.confidence == 50


def test_mailchimp_html_escaped_query_string():
    html = '<form action="https://x.us5.list-manage.com/subscribe/post?u=U1&amp;id=L2"></form>'
    result = detect_provider(html)
    assert result.extracted_params == {"u": "U1", "id": "L2"}
    assert result.direct_endpoint == "https://x.us5.list-manage.com/subscribe/post?u=U1&amp;id=L2"


def test_mailchimp_script_only_yields_server():
    html = '<script src="https://mc.us14.list-manage.com/embedcode.js"></script>'
    result = detect_provider(html)
    assert result.provider == "mailchimp"
    assert result.direct_endpoint is None
    assert result.confidence == 30
    assert result.extracted_params == {"server": "us14"}


def test_mailchimp_script_with_form_skips_server():
    html = MAILCHIMP_FORM + '<script src="https://mc.us1.list-manage.com/x.js"></script>'
    result = detect_provider(html)
    assert result.confidence == 80
    assert "server" not in result.extracted_params


def test_klaviyo_onsite_script_synthesizes_endpoint():
    html = (
        '<script async src="//static.klaviyo.com/media/js/onsite/onsite.js?company_id=Xy12"></script>'
        '<div class="klaviyo-form" data-klaviyo-list-id="LST9"></div>'
    )
    result = detect_provider(html)
    assert result.provider == "klaviyo"
    assert result.confidence == 40
    assert result.direct_endpoint == KLAVIYO_SUBSCRIBE_ENDPOINT
    assert result.extracted_params == {"company_id": "Xy12", "list_id": "LST9"}


def test_klaviyo_form_action_wins_over_synthesized_endpoint():
    html = (
        '<form action="https://manage.kmail-lists.klaviyo.com/subscriptions/subscribe"></form>'
        '<script src="https://static.klaviyo.com/media/js/onsite/onsite.js?company_id=C1"></script>'
        "<script>window.klaviyoForms = []</script>"
    )
    result = detect_provider(html)
    assert result.confidence == 110
    assert result.direct_endpoint == "https://manage.kmail-lists.klaviyo.com/subscriptions/subscribe"


def test_constant_contact_priority_form_over_embed_over_link():
    link = '<a href="https://visitor.constantcontact.com/d.jsp?m=1">Join</a>'
    embed = '<iframe src="https://lp.constantcontact.com/su/abc"></iframe>'
    form = '<form action="https://visitor.r20.constantcontact.com/manage/optin"></form>'

    assert detect_provider(link).direct_endpoint == "https://visitor.constantcontact.com/d.jsp?m=1"
    assert detect_provider(link).confidence == 10

    both = detect_provider(link + embed)
    assert both.direct_endpoint == "https://lp.constantcontact.com/su/abc"
    assert both.confidence == 40

    everything = detect_provider(link + embed + form)
    assert everything.provider == "constant_contact"
    assert everything.direct_endpoint == "https://visitor.r20.constantcontact.com/manage/optin"
    assert everything.confidence == 90


def test_mailerlite_account_and_group():
    html = (
        '<script src="https://assets.mailerlite.com/js/universal.js"></script>'
        "<script>ml('account', '12345');</script>"
        '<div class="ml-embedded" data-ml-group="g77"></div>'
    )
    result = detect_provider(html)
    assert result.provider == "mailerlite"
    assert result.confidence == 50
    assert result.direct_endpoint is None
    assert result.extracted_params == {"account_id": "12345", "group_id": "g77"}


def test_mailerlite_form_action():
    html = '<form action="https://assets.mailerlite.com/jsonp/1/subscribe"></form>'
    result = detect_provider(html)
    assert result.provider == "mailerlite"
    assert result.direct_endpoint == "https://assets.mailerlite.com/jsonp/1/subscribe"


def test_ml_dot_com_is_not_matched_inside_other_hosts():
    html = '<script src="https://www.html.com/widget.js"></script>'
    assert detect_provider(html).provider is None


def test_beehiiv_embed_publication_id():
    html = (
        '<iframe data-src="https://embeds.beehiiv.com/v1/abc-123?slim=true"></iframe>'
        '<a href="https://bistro.beehiiv.com/subscribe">Read</a>'
    )
    result = detect_provider(html)
    assert result.provider == "beehiiv"
    assert result.confidence == 60
    assert result.direct_endpoint == "https://embeds.beehiiv.com/v1/abc-123?slim=true"
    assert result.extracted_params == {"publication_id": "abc-123"}


def test_squarespace_endpoint_from_canonical():
    html = (
        '<html><head><link rel="canonical" href="https://www.bistro.example/home"/></head><body>'
        '<form class="newsletter-form" data-form-id="5f1"><input type="email" name="email"></form>'
        '<script>Static.SQUARESPACE_CONTEXT = {"collectionId": "col9"};</script>'
        "</body></html>"
    )
    result = detect_provider(html)
    assert result.provider == "squarespace"
    assert result.confidence == 90
    assert result.direct_endpoint == "https://www.bistro.example/api/form/FormSubmit"
    assert result.extracted_params == {"formId": "5f1", "collectionId": "col9"}


def test_squarespace_endpoint_from_og_url():
    html = (
        '<meta property="og:url" content="https://eat.example/menu">'
        '<div class="newsletter-form" data-form-id="f2"></div>'
    )
    result = detect_provider(html)
    assert result.provider == "squarespace"
    assert result.confidence == 50
    assert result.direct_endpoint == "https://eat.example/api/form/FormSubmit"


def test_squarespace_without_self_reference_has_no_endpoint():
    result = detect_provider('<div class="newsletter-form" data-form-id="f2"></div>')
    assert result.provider == "squarespace"
    assert result.direct_endpoint is None


def test_substack_link_rewritten_to_api():
    html = '<a href="https://tacotuesday.substack.com/subscribe">Subscribe</a>'
    result = detect_provider(html)
    assert result.provider == "substack"
    assert result.confidence == 40
    assert result.direct_endpoint == "https://tacotuesday.substack.com/api/v1/free"
    assert result.extracted_params == {"subdomain": "tacotuesday"}


def test_tie_keeps_first_registered():
    # klaviyoForms marker and a beehiiv link are both worth 20
    html = '<script>var k = window.klaviyoForms;</script><a href="https://x.beehiiv.com/">News</a>'
    result = detect_provider(html)
    assert result.provider == "klaviyo"
    assert result.confidence == 20


def test_confidence_monotonic_as_signals_are_added():
    base = '<script src="https://mc.us1.list-manage.com/embed.js"></script>'
    noise = '<a href="https://x.beehiiv.com/">News</a><iframe src="https://lp.constantcontact.com/x"></iframe>'
    steps = [base, base + MAILCHIMP_FORM, base + MAILCHIMP_FORM + noise]

    confidences = [detect_provider(html).confidence for html in steps]
    assert confidences == sorted(confidences)
    assert all(detect_provider(html).provider == "mailchimp" for html in steps[1:])


def test_malformed_html_terminates():
    html = "<form action=" * 500 + "<script src='" * 500 + '<a href="' * 500
    result = detect_provider(html)
    assert result.confidence >= 0
