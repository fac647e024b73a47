def mask_token(text: str, token: str) -> str:
    return text.replace(token, f"{token[:4]}****") if token else text


def mask_cookie(set_cookie: str) -> str:
    """Keep the cookie name and attributes readable in logs, hide the value."""
    name_value, sep, attributes = set_cookie.partition(";")
    name, eq, value = name_value.partition("=")
    if not eq:
        return set_cookie
    return f"{name}={mask_token(value, value.strip())}{sep}{attributes}"
