from fastapi import Request


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Checks the following headers in order:
    1. CF-Connecting-IP (Cloudflare)
    2. X-Forwarded-For (first hop, for proxy/load balancer scenarios)
    3. X-Real-IP
    4. Direct client IP from request

    Args:
        request: The FastAPI request object.

    Returns:
        The client IP address as a string, or "unknown".
    """
    cf_ip = request.headers.get("CF-Connecting-IP")
    if cf_ip:
        return cf_ip.strip()

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else "unknown"
