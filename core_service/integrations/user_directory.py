"""
User directory gateway.

Resolves a use case owner's e-mail address and preferred language so the
handoff notification reaches them in their locale.

Endpoint:
    GET {USER_SERVICE_URL}/v1/users/<user_id>  →  {"id", "mail", "language", ...}
"""

from __future__ import annotations

from core_service.core.exceptions import NotFoundError
from core_service.integrations.http_gateway import GatewayError, HttpGateway

DEFAULT_LANGUAGE = "en"


class UserDirectoryGateway(HttpGateway):
    service_name = "user-service"
    base_url_config_key = "USER_SERVICE_URL"

    def get_user_by_id(self, user_id: str, auth_headers: dict | None = None) -> dict:
        """Return ``{"mail": str, "language": str}`` for ``user_id``.

        Raises:
            NotFoundError: the directory does not know the user.
            GatewayError: any other failure, including a reply without mail.
        """
        resp = self.request("GET", f"/v1/users/{user_id}", headers=auth_headers)
        if resp.status_code == 404:
            raise NotFoundError("User", user_id)
        if not resp.ok:
            raise GatewayError(self.service_name, f"HTTP {resp.status_code}", resp.status_code)

        body = resp.json() or {}
        # Some deployments wrap payloads as {"data": {...}}
        user = body.get("data", body) if isinstance(body, dict) else {}
        mail = user.get("mail") or user.get("email")
        if not mail:
            raise GatewayError(self.service_name, f"user {user_id} has no mail address")
        return {"mail": mail, "language": user.get("language") or DEFAULT_LANGUAGE}


user_directory_gateway = UserDirectoryGateway()
