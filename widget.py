import re
from typing import Optional

from jinja2 import Environment
from markupsafe import Markup

from config import ConfigurationError, DEFAULT_ACTION

VENDOR_JS_URL = "https://www.google.com/recaptcha/api.js?render={site_key}"

# tokens expire after two minutes
REFRESH_INTERVAL_MS = 1000 * 60 * 2

HIDDEN_BADGE_CSS = ".grecaptcha-badge {visibility: hidden;}"

BADGE_HINT = Markup(
    "This site is protected by reCAPTCHA and "
    "the Google <a href='https://policies.google.com/privacy'>Privacy Policy</a> "
    "and <a href='https://policies.google.com/terms'>Terms of Service</a> apply."
)

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-\[\]]*$")

_env = Environment(autoescape=True)

HEAD_TMPL = _env.from_string(
    '<script src="{{ script_url }}" id="recaptcha-js-{{ site_key }}"></script>'
    "{% if not show_badge %}<style>{{ css }}</style>{% endif %}"
)

INPUT_TMPL = _env.from_string(
    '<input type="hidden" id="{{ field_id }}" name="{{ field_name }}" value="">'
)

HINT_TMPL = _env.from_string('<div class="recaptcha-hint">{{ hint }}</div>')

ON_SUBMIT_JS = _env.from_string("""<script>
grecaptcha.ready(function() {
    let reCaptchaField = document.getElementById({{ field_id|tojson }});
    let form = reCaptchaField.closest('form');

    form.onsubmit = (e) => {
        e.preventDefault();

        grecaptcha
            .execute({{ site_key|tojson }}, {action: {{ action|tojson }}})
            .then(function(token) {
                reCaptchaField.value = token;
                form.submit();
            });
    };
});
</script>""")

PRELOADING_JS = _env.from_string("""<script>
let reCaptchaTaskID = undefined;

function refreshCaptchaToken(formField) {
    grecaptcha
        .execute({{ site_key|tojson }}, {action: {{ action|tojson }}})
        .then(
            function (token) {
                formField.value = token;
                console.debug('reCaptcha token was set');
            }
        );

    if (!reCaptchaTaskID) {
        reCaptchaTaskID = setInterval(
            function () {
                refreshCaptchaToken(formField);
            },
            {{ interval }}
        );
    }
}

grecaptcha.ready(function() {
    let reCaptchaField = document.getElementById({{ field_id|tojson }});
    let form = reCaptchaField.closest('form');

    refreshCaptchaToken(reCaptchaField);

    form.onsubmit = (e) => {
        refreshCaptchaToken(reCaptchaField);
    };
});
</script>""")


class ReCaptchaWidget:
    """
    Hidden form input plus the scripts that fill it with a reCAPTCHA v3 token.

    By default the token is requested when the form is submitted. With
    `preloading` a token is fetched as soon as the page is ready and kept
    fresh in the background, so the submit is not delayed by the round trip.
    """

    def __init__(self, site_key: str, field_name: str = "recaptcha_token", action: str = DEFAULT_ACTION,
                 show_badge: bool = True, preloading: bool = False, field_id: Optional[str] = None):
        if not site_key:
            raise ConfigurationError("Google reCAPTCHA site key must be specified!")
        if not field_name or not _FIELD_NAME.match(field_name):
            raise ConfigurationError(f"Invalid reCAPTCHA attribute name: {field_name!r}")
        self.site_key = site_key
        self.field_name = field_name
        self.field_id = field_id or re.sub(r"[^A-Za-z0-9_\-]", "-", field_name).strip("-")
        self.action = action
        self.show_badge = show_badge
        self.preloading = preloading

    @property
    def script_url(self) -> str:
        return VENDOR_JS_URL.format(site_key=self.site_key)

    @property
    def hint(self) -> Optional[Markup]:
        # Google requires the notice when its badge is hidden
        return None if self.show_badge else BADGE_HINT

    def render_head(self) -> Markup:
        return Markup(HEAD_TMPL.render(
            script_url=self.script_url, site_key=self.site_key,
            show_badge=self.show_badge, css=Markup(HIDDEN_BADGE_CSS),
        ))

    def render_input(self) -> Markup:
        return Markup(INPUT_TMPL.render(field_id=self.field_id, field_name=self.field_name))

    def render_script(self) -> Markup:
        tmpl = PRELOADING_JS if self.preloading else ON_SUBMIT_JS
        return Markup(tmpl.render(
            site_key=self.site_key, action=self.action,
            field_id=self.field_id, interval=REFRESH_INTERVAL_MS,
        ))

    def render(self) -> Markup:
        parts = [self.render_head()]
        if self.hint is not None:
            parts.append(Markup(HINT_TMPL.render(hint=self.hint)))
        parts.append(self.render_input())
        parts.append(self.render_script())
        return Markup("\n").join(parts)

    def __html__(self) -> str:
        return str(self.render())
