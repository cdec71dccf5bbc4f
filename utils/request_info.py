from flask import has_request_context, request


def client_ip() -> str:
    # first hop of X-Forwarded-For is the original client
    if not has_request_context():
        return "unknown"
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first[:64]
    return (request.remote_addr or "unknown")[:64]


def client_user_agent():
    if not has_request_context():
        return None
    ua = request.headers.get("User-Agent", "")
    return ua[:255] if ua else None
