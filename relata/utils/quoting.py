"""Identifier quoting shared by the expressions and the default dialect."""


def quote_identifier(name: str) -> str:
    """Quote a possibly qualified identifier with ANSI double quotes.

    ``orders.total`` becomes ``"orders"."total"``; ``*`` segments and
    segments that are already quoted are left alone.
    """
    parts = []
    for part in name.split("."):
        if part == "*" or (part.startswith('"') and part.endswith('"') and len(part) > 1):
            parts.append(part)
        else:
            parts.append('"' + part.replace('"', '""') + '"')
    return ".".join(parts)
