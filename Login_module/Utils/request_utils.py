"""
Request helpers shared by routers and middleware.
"""


def get_client_ip(request) -> str:
    """Extract client IP address from request"""
    # Behind a proxy/load balancer the first hop is the client
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"
