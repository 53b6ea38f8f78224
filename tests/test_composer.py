"""
Tests for HTML escaping and email composition.
"""

from contact_relay.models.contact import ContactSubmission
from contact_relay.services.composer import build_subject, compose
from contact_relay.utils.html import escape_html, nl2br

from conftest import make_settings


class TestEscapeHtml:

    def test_escapes_all_special_characters_once(self):
        assert (
            escape_html("<script>&\"'</script>")
            == "&lt;script&gt;&amp;&quot;&#039;&lt;/script&gt;"
        )

    def test_existing_entities_are_escaped_as_text(self):
        assert escape_html("&lt;") == "&amp;lt;"

    def test_none_becomes_empty(self):
        assert escape_html(None) == ""

    def test_nl2br(self):
        assert nl2br("a\nb\n") == "a<br>b<br>"


class TestCompose:

    def setup_method(self):
        self.settings = make_settings(MAIL_SUBJECT_TAG="Devom Contact", MAIL_FROM_NAME="Devom")

    def test_addresses_come_from_configuration(self):
        sub = ContactSubmission(name="Ana", email="a@b.com", message="hello")
        envelope = compose(sub, self.settings)

        assert envelope.from_address == "site@devom.fr"
        assert envelope.from_name == "Devom"
        assert envelope.to_address == "owner@devom.fr"
        assert envelope.reply_to == "a@b.com"

    def test_subject_uses_escaped_name(self):
        assert (
            build_subject("<b>Ana</b>", self.settings)
            == "[Devom Contact] Nouveau message de &lt;b&gt;Ana&lt;/b&gt;"
        )

    def test_subject_collapses_line_breaks_in_name(self):
        assert (
            build_subject("Ana\nMaria\r\nDa\rSilva", self.settings)
            == "[Devom Contact] Nouveau message de Ana Maria Da Silva"
        )

    def test_html_body_escapes_user_fields(self):
        sub = ContactSubmission(
            name="Ana <script>",
            email="a@b.com\"",
            message="line 1\n<i>line 2</i>",
        )
        envelope = compose(sub, self.settings)

        assert "Ana &lt;script&gt;" in envelope.html
        assert '<a href="mailto:a@b.com&quot;">a@b.com&quot;</a>' in envelope.html
        assert "line 1<br>&lt;i&gt;line 2&lt;/i&gt;" in envelope.html
        assert "<script>" not in envelope.html

    def test_text_body_keeps_raw_fields(self):
        sub = ContactSubmission(name="Ana & co", email="a@b.com", message="it's\nfine")
        envelope = compose(sub, self.settings)

        assert "Nom : Ana & co" in envelope.text
        assert "it's\nfine" in envelope.text

    def test_sender_defaults_to_smtp_user(self):
        settings = make_settings(MAIL_FROM="", MAIL_TO="", MAIL_USER="relay@devom.fr")
        envelope = compose(ContactSubmission(name="A", email="a@b.com", message="m"), settings)

        assert envelope.from_address == "relay@devom.fr"
        assert envelope.to_address == "relay@devom.fr"
