"""Smart strings: ``{name}``, ``{count:plural:one|many}`` and
``{key:select:a{...}b{...}other{...}}`` placeholders.
"""

import re

from . import PLACEHOLDER_RE

PLACEHOLDER_TOKEN = "###PH{}###"
_SELECT_KEY_RE = re.compile(r'(\w+)\{')


def extract_placeholders(text: str) -> tuple:
    """Swap every placeholder for a ``###PHn###`` token.

    Machine translation leaves the tokens alone, so the placeholders can
    be put back with restore_placeholders() afterwards.

    Returns:
        (tokenized_text, {token: placeholder})
    """
    if not text:
        return text, {}
    placeholders = {}

    def swap(m):
        token = PLACEHOLDER_TOKEN.format(len(placeholders))
        placeholders[token] = m.group(0)
        return token

    return PLACEHOLDER_RE.sub(swap, text), placeholders


def restore_placeholders(text: str, placeholders: dict) -> str:
    if not text or not placeholders:
        return text
    for token, placeholder in placeholders.items():
        text = text.replace(token, placeholder)
    return text


def split_pipes(text: str) -> list:
    """Split on ``|`` outside braces."""
    if not text:
        return []
    parts, current, depth = [], [], 0
    for c in text:
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
        elif c == "|" and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(c)
    parts.append("".join(current))
    return parts


def _plural(value, options: str) -> str:
    if value is None or not options:
        return ""
    try:
        count = int(str(value))
    except ValueError:
        return str(value)
    forms = split_pipes(options)
    form = forms[0] if len(forms) == 1 or count == 1 else forms[1]
    return form.replace("{}", str(count))


def _select_options(options: str) -> list:
    """Parse ``key{value}key{value}`` into [(key, value)], braces nested."""
    result = []
    pos = 0
    while True:
        m = _SELECT_KEY_RE.search(options, pos)
        if not m:
            return result
        depth, i = 1, m.end()
        while i < len(options) and depth:
            if options[i] == "{":
                depth += 1
            elif options[i] == "}":
                depth -= 1
            i += 1
        if depth:
            return result
        result.append((m.group(1).lower(), options[m.end():i - 1]))
        pos = i


def _select(value, options: str) -> str:
    if value is None or not options:
        return ""
    key = str(value).lower()
    choices = _select_options(options)
    for option, text in choices:
        if option == key:
            return text
    for option, text in choices:
        if option == "other":
            return text
    return str(value)


FORMATTERS = {
    "plural": _plural,
    "p": _plural,
    "select": _select,
    "s": _select,
}


def format(text: str, args: dict) -> str:
    """Fill the placeholders of *text* from *args*.

    Placeholders naming a variable missing from *args* are left as-is.
    """
    if not text or not args:
        return text

    def fill(m):
        parts = m.group(0)[1:-1].split(":", 2)
        name = parts[0].strip()
        if name not in args:
            return m.group(0)
        value = args[name]
        if len(parts) == 1:
            return "" if value is None else str(value)
        formatter = FORMATTERS.get(parts[1].strip().lower())
        options = parts[2].strip() if len(parts) > 2 else ""
        if formatter is None:
            return "" if value is None else str(value)
        return formatter(value, options)

    return PLACEHOLDER_RE.sub(fill, text)
