# ampersand first so the entities produced below are not escaped twice
_HTML_ENTITIES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&#039;"),
)


def escape_html(value) -> str:
    text = "" if value is None else str(value)
    for char, entity in _HTML_ENTITIES:
        text = text.replace(char, entity)
    return text


def nl2br(text: str) -> str:
    return text.replace("\n", "<br>")
